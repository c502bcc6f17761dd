import pytest

from webserv.directives import (
    ConfigError,
    Directive,
    check_methods,
    check_port,
    check_valid_directive,
    convert_and_check_number,
    convert_and_check_timeout,
    directive_value,
    extract_location_value,
    get_key,
    strip_comment,
    trim,
)


def test_trim_removes_all_whitespace_kinds():
    assert trim(" \t\r\n\f\vroot /www \t") == "root /www"
    assert trim(" \t \n") == ""


def test_strip_comment():
    assert strip_comment("listen 80; # main port") == "listen 80; "
    assert strip_comment("# only comment") == ""
    assert strip_comment("root /www;") == "root /www;"


def test_extract_location_value():
    assert extract_location_value("location /images {") == "/images"
    assert extract_location_value("location") == ""


def test_directive_value_between_space_and_semicolon():
    assert directive_value("listen 127.0.0.1:8080;") == "127.0.0.1:8080"
    assert directive_value("error_page 404 /404.html;") == "404 /404.html"


def test_directive_value_without_semicolon_runs_to_end():
    assert directive_value("index index.html") == "index.html"


def test_directive_value_without_space_starts_at_beginning():
    assert directive_value("root;") == "root"


def test_check_methods_strips_semicolon():
    assert check_methods("GET POST DELETE;") == ["GET", "POST", "DELETE"]
    assert check_methods("PUT") == ["PUT"]


def test_check_methods_lowercase_rejected():
    with pytest.raises(ConfigError, match="uppercase"):
        check_methods("GET post")


def test_check_methods_unknown_rejected():
    with pytest.raises(ConfigError, match="Invalid allowed method"):
        check_methods("GET PATCH")


@pytest.mark.parametrize("port", ["1", "80", "65535"])
def test_check_port_valid(port):
    assert check_port(port) == port


@pytest.mark.parametrize(
    ("port", "message"),
    [
        ("", "port is empty"),
        ("80a", "not a number"),
        ("-1", "not a number"),
        ("0", "out of range"),
        ("65536", "out of range"),
    ],
)
def test_check_port_invalid(port, message):
    with pytest.raises(ConfigError, match=message):
        check_port(port)


def test_convert_and_check_number_limits():
    assert convert_and_check_number("0") == 0
    assert convert_and_check_number("2147483647") == 2147483647
    with pytest.raises(ConfigError, match="exceed numeric limit"):
        convert_and_check_number("2147483648")


@pytest.mark.parametrize(("text", "message"), [("", "empty"), ("12k", "not a number")])
def test_convert_and_check_number_invalid(text, message):
    with pytest.raises(ConfigError, match=message):
        convert_and_check_number(text)


def test_convert_and_check_timeout():
    assert convert_and_check_timeout("30") == 30
    assert convert_and_check_timeout("9223372036854775807") == 9223372036854775807
    with pytest.raises(ConfigError, match="exceed numeric limit"):
        convert_and_check_timeout("9223372036854775808")
    with pytest.raises(ConfigError, match="client timeout is empty"):
        convert_and_check_timeout("")
    with pytest.raises(ConfigError, match="client timeout is not a number"):
        convert_and_check_timeout("5s")


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("listen 80;", Directive.LISTEN),
        ("server_name example.com;", Directive.SERVERNAME),
        ("client_max_body_size 1000;", Directive.CLIENT_MAX_BODY_SIZE),
        ("client_timeout 5;", Directive.CLIENT_TIMEOUT),
        ("return 301 /new;", Directive.RETURN_PATH),
        ("autoindex on;", Directive.AUTO_INDEX),
        ("cgi_path on;", Directive.CGI_PATH),
        ("  location / {", Directive.LOCATION),
        ("listen80;", Directive.UNKNOWN),
        ("", Directive.UNKNOWN),
    ],
)
def test_get_key(line, expected):
    assert get_key(line) is expected


@pytest.mark.parametrize(
    ("line", "directive"),
    [
        ("listen 80;", Directive.LISTEN),
        ("root /var/www;", Directive.ROOT),
        ("error_page 404 /errors/404.html;", Directive.ERROR_PAGE),
        ("return 301 /new;", Directive.RETURN_PATH),
        ('return 200 "hello there";', Directive.RETURN_PATH),
        ("allowed_method GET POST;", Directive.ALLOWED_METHOD),
        ("autoindex off;", Directive.AUTO_INDEX),
        ("allow_upload on;", Directive.ALLOW_UPLOAD),
        ("location /cgi {", Directive.LOCATION),
    ],
)
def test_valid_directives_pass(line, directive):
    check_valid_directive(line, directive)
    assert get_key(line) is directive


@pytest.mark.parametrize(
    ("line", "directive", "message"),
    [
        (";", Directive.LISTEN, "invalid directive"),
        ("listen;", Directive.LISTEN, "missing directive value"),
        ("listen 80 81;", Directive.LISTEN, "extra value found in directive"),
        ("error_page /404.html;", Directive.ERROR_PAGE, "missing error code"),
        ("error_page 404;", Directive.ERROR_PAGE, "missing error code"),
        ("error_page 404 /a /b;", Directive.ERROR_PAGE, "extra value found in error_page"),
        ("return /new;", Directive.RETURN_PATH, "missing status code"),
        ("return 301;", Directive.RETURN_PATH, "missing value in return"),
        ('return 200 "open;', Directive.RETURN_PATH, "missing closing quote"),
        ('return 200 "a" "b";', Directive.RETURN_PATH, "extra value found in return"),
        ('return 200 ";', Directive.RETURN_PATH, "extra value found in return"),
        ("return 301 /a /b;", Directive.RETURN_PATH, "unquoted return"),
        ("allowed_method;", Directive.ALLOWED_METHOD, "missing allowed method"),
        ("autoindex;", Directive.AUTO_INDEX, "missing directive value"),
        ("autoindex yes;", Directive.AUTO_INDEX, "must be 'on' or 'off'"),
        ("location {", Directive.LOCATION, "invalid location directive"),
        ("location", Directive.LOCATION, "missing location path"),
        ("location /a", Directive.LOCATION, "invalid location directive"),
        ("root /www;", Directive.LISTEN, "unknown directive"),
    ],
)
def test_invalid_directives_raise(line, directive, message):
    with pytest.raises(ConfigError, match=message):
        check_valid_directive(line, directive)


def test_error_message_quotes_the_line():
    with pytest.raises(ConfigError) as info:
        check_valid_directive("listen 1 2;", Directive.LISTEN)
    assert "[listen 1 2;]" in str(info.value)