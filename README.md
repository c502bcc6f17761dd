# webserv

A small HTTP/1.1 server driven by an nginx-style configuration file. It
serves static files and directory listings, accepts multipart file uploads,
runs CGI scripts, keeps simple cookie-based sessions and handles several
virtual servers on one or more listening addresses from a single
non-blocking event loop built on `selectors`.

It has no dependencies outside the standard library.

## Installing

```
pip install .
```

## Running

```
webserv path/to/server.conf
```

With no argument the server reads `./conf/default.conf`. Passing more than
one configuration file is an error. The server runs until it receives
`SIGINT` or `SIGTERM`, then closes every socket and exits. Configuration
errors and failures to open a listening socket are printed and the command
exits with status 1.

## Configuration

A configuration file holds one or more `server { ... }` blocks. Each block
may contain `location <path> { ... }` blocks. Comments start with `#`, and
every directive ends with `;`.

```
server {
    listen 127.0.0.1:8080;
    server_name example.local;
    root /var/www;
    allowed_method GET POST DELETE;
    client_max_body_size 1048576;
    client_body_buffer_size 4096;
    client_header_buffer_size 1024;
    client_timeout 30;
    error_page 404 /errors/404.html;

    location / {
        index index.html;
        autoindex on;
    }

    location /upload {
        root /uploads;
        allowed_method POST;
        allow_upload on;
    }

    location /cgi-bin {
        cgi_path on;
    }

    location /old {
        return 301 /new;
    }
}
```

Server directives: `listen`, `server_name`, `root`, `allowed_method`,
`client_max_body_size`, `client_body_buffer_size`,
`client_header_buffer_size`, `client_timeout`, `error_page`, `location`.

Location directives: `index`, `root`, `alias`, `allowed_method`, `return`,
`autoindex`, `allow_upload`, `cgi_path`. `autoindex`, `allow_upload` and
`cgi_path` take `on` or `off`. A location without its own `allowed_method`
takes the server's methods as they stand when the location block is read,
so put the server's `allowed_method` before its locations.

`listen` takes `port` or `host:port`; ports must be in 1–65535. Servers
sharing the same `listen` address are told apart by the `Host` header; the
first server listed for an address (or for `0.0.0.0` on the same port) is
the default one.

Unknown directives, malformed values and bad method names raise
`webserv.directives.ConfigError`.

## Behaviour

- Only `GET`, `POST` and `DELETE` are accepted, and only `HTTP/1.1`; a
  request must carry a `Host` header, and `GET`/`DELETE` must not carry a
  body.
- Request bodies may be sent with `Content-Length` or chunked
  `Transfer-Encoding`; bodies over `client_max_body_size` get `413`.
- `GET` serves a file (with a content type guessed from its extension), the
  location's `index` file for a directory, or an HTML listing of the
  directory.
- `POST` stores the files of a `multipart/form-data` body in the location's
  directory when `allow_upload on` is set, answering `201`.
- `DELETE` is only handled by CGI; otherwise it gets `405`.
- `return 301|302 <url>` redirects, `return 200 "<text>"` answers with
  plain text.
- CGI scripts must have `.cgi`, `.py` or `.js` in their path; they get the
  request through the usual CGI environment variables plus `SESSION_DATA`,
  receive the body on standard input for `POST` and `DELETE`, and are killed
  after five seconds (`504`). A `Status` header in their output sets the
  response code. A script may answer with `X-Session-Update: <data>` or
  `X-Session-Delete: yes` to change the session data.
- Each new visitor gets a `session_id` cookie; sessions live in memory only.
- Errors are answered with the configured `error_page` (read from the
  server `root` plus the page path) if there is one, otherwise with a
  generated HTML page, and the connection is closed.
- Clients idle for `client_timeout` seconds are disconnected.

## Using it from Python

```python
from webserv.config import parse_all_servers
from webserv.server import WebServer, install_signal_handlers

servers = parse_all_servers("server.conf")
server = WebServer(servers)
install_signal_handlers(server)
server.setup_listeners()
server.run()
```

`WebServer.stop()` ends the loop from another thread or a signal handler.
The building blocks can be used on their own: `webserv.request.HttpRequest`
parses request heads, `webserv.response.HttpResponse` builds and serialises
responses, `webserv.client.ChunkedDecoder` decodes chunked bodies, and
`webserv.cgi.parse_cgi_output` splits CGI output into headers and body.

## What it does not do

- No TLS; connections are plain HTTP.
- A client that times out is simply disconnected; no `408` response is sent.
- Sessions are not persisted and are lost when the process exits.
- Directory listings are not HTML-escaped.