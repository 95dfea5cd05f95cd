# webserv

A small HTTP/1.1 server configured by an nginx-style configuration file. It
serves static files, index files and directory listings. It also handles
`return` redirects, custom error pages, per-location method limits, limits on
request body size and multipart file uploads.

## Installing

    pip install .

To install the test dependencies and run the tests:

    pip install ".[test]"
    pytest

## Running

Pass the path of a configuration file to the server:

    webserv path/to/server.conf

`python -m webserv.server path/to/server.conf` does the same thing.

The server opens one listening IPv4 socket for each distinct `listen` address
in the configuration. A `0.0.0.0` address on a port takes the place of every
other address on that port. The server logs to standard error and runs until
it is interrupted. It exits with status 1 in these cases:

- the configuration file is missing;
- the configuration file cannot be read or parsed;
- a listening socket cannot be opened.

## Configuration

The file holds directives at the top level. Blocks go in braces and simple
directives end with `;`. Everything from a `#` to the end of the line is a
comment.

    server {
        listen 127.0.0.1:8080;
        server_name example.com www.example.com;
        root www;
        index index.html index.htm;
        error_page 404 /errors/404.html;
        client_max_body_size 1048576;

        location /images {
            autoindex on;
            limit_except GET;
        }

        location = /old {
            return 301 /new;
        }

        location /upload {
            limit_except GET POST;
        }
    }

### Directives

- `server`: a virtual server block.
- `listen`: a port, a host, or a host and port. The host is `localhost`, `*`
  or an IPv4 address, for example `8080`, `127.0.0.1:8080` or `localhost`. A
  port on its own listens on `0.0.0.0`. A host without a port listens on
  8080.
- `server_name`: one or more names matched against the host in the `Host`
  header.
- `location`: a block for a URI prefix; the longest matching prefix wins. With
  `=` before the URI, the block matches that exact URI only, and the request
  maps to the root directory itself.
- `root`: the directory that files are served from. The default is `www`. A
  `root` inside the matching location is used first.
- `index`: the files to try, in order, when a directory is requested. The
  default is `index.html`, then `index.htm`.
- `autoindex`: `on` or `off`. When it is `on`, a directory with no index file
  gets an HTML listing. When it is `off`, such a request gets 403.
- `limit_except`: the methods allowed in a location, from `GET`, `POST` and
  `DELETE`. Without it, only `GET` is allowed. Any other method gets 405 with
  an `Allow` header.
- `error_page`: a status code from 300 to 599 and the page to serve for it,
  relative to the root.
- `client_max_body_size`: the largest `Content-Length` allowed, in bytes.
  Requests above it get 413.
- `return`: a status code and an optional URL.
  - A 3xx code with a URL redirects to that URL.
  - A 4xx or 5xx code with a URL starting with `/` serves that page from the
    root, if it exists.
  - Otherwise the response is an error response with that code.

### Where directives are allowed

At the top level, only `server`, `error_page`, `client_max_body_size`, `root`,
`index` and `autoindex` are accepted. `listen`, `server_name` and `location`
belong inside `server`. `limit_except` belongs inside `location`.

### Choosing a server block

The server picks a `server` block by going through the blocks in order. It
takes the first block whose `server_name` lists the host in the `Host` header,
or whose `listen` port equals the port in that header. If none matches, it
uses the first block.

## Behaviour worth knowing

- Each connection carries one request. The connection is closed after the
  response is sent.
- A request that stays idle for more than 10 seconds is dropped without a
  response.
- A `POST` with a multipart body stores the first file part in
  `/tmp/uploads`, then copies it into `www/uploads`. The reply is `201` with
  `www/201.html` as its body. If the copy fails, the reply is 404.
- The server writes files while it runs:
  - when an error has no configured page, a default page is written to
    `www/error_<code>.html`;
  - redirect bodies are written to `/tmp/webserv_redirect.html`;
  - directory listings are written to `<root>/autoindex_<pid>.html`.
- Request bodies are spooled to temporary files named `webserv_body_*`.

## What it does not do

The server has no CGI and no keep-alive. It serves files only from disk.
`DELETE` can be allowed with `limit_except`, but it never deletes anything: it
is answered with 404. The server listens on IPv4 only and has no TLS. The
`allow` and `deny` directives exist in the directive tree, but the parser does
not accept them.

## Using it as a library

### Parsing a configuration

    from webserv.config_parser import parse_config_text

    http = parse_config_text("server { listen 8080; root www; }")

`parse_config(path)` reads the configuration from a file instead. Both
functions return the `Http` block from `webserv.directives` and raise
`DirectiveError` when the configuration is malformed.

### Parsing a request

Requests can be fed in one chunk at a time:

    from webserv.request import Request

    with Request() as request:
        request.append(b"GET / HTTP/1.1\r\nHost: localhost\r\n\r\n")
        assert request.is_done()
        print(request.line.method, request.line.uri, request.headers.get("host"))

A request that cannot be parsed does not raise. It ends in the `ERROR` state
of `RequestState`, and `status_code` says why, for example
`HttpStatusCode.BAD_REQUEST`. Leaving the `with` block removes the temporary
body file.

### Other modules

| Module | What it provides |
| --- | --- |
| `webserv.response` | `Response`, `serve_file` and `redirect_response` |
| `webserv.mime` | `mime_type` |
| `webserv.directory_listing` | `generate_listing` |
| `webserv.listeners` | `collect_listen_addresses` and `create_listening_sockets` |
| `webserv.server` | `serve_forever` and `main` |