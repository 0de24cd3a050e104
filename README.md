# svcutils

Small building blocks for backend services, for use as a library.

## What is inside

| Module | Purpose |
| --- | --- |
| `svcutils.array` | Helpers over lists of strings: `merge_string`, `distinct_string`, `intersect_string`, `difference_string`, `contains_string`, `contains_empty` |
| `svcutils.env` | Typed environment variable lookup with defaults; `EnvError` on missing or unparsable values |
| `svcutils.uuids` | A string-based `UUID` type with `is_valid`/`validate`, `new()` and `EMPTY_UUID` |
| `svcutils.timeutils` | Millisecond timestamps, second/millisecond unit checks, month ranges in UTC |
| `svcutils.log` | Structured logging to standard output as JSON lines (or console text with `CONSOLE_LOGGER=true`), level from `LOG_LEVEL` |
| `svcutils.cache` | An in-memory cache with a time to live, hit/miss counters and per-function metrics |
| `svcutils.access_token_context` | Carry the access token subject through the current context |
| `svcutils.tags` | Build comma separated Datadog tag strings |
| `svcutils.lambda_messages` | Parse Lambda `START`, `END` and `REPORT` log lines |
| `svcutils.datadog_client` | `LogClient` interface and a TCP/TLS `TCPClient` posting log entries to the Datadog intake |
| `svcutils.cloudwatch` | Decode CloudWatch Logs subscription data and turn it into Datadog log entries |
| `svcutils.log_forwarder` | A Lambda handler forwarding CloudWatch Logs events to Datadog, configured from the environment |
| `svcutils.auth` | Sign-in against the SSO API (with change-password challenge) and local token validity checks |
| `svcutils.cachedauth` | Thread-safe sign-in that keeps tokens until they are within five minutes of expiry |
| `svcutils.jwk` | Fetch JSON Web Key sets from a URL and build RSA public keys |
| `svcutils.jwt_tokens` | Verify signed tokens against the key sets and validate their claims |
| `svcutils.http_server` | JSON responses (gzipped when worthwhile), request decoding, a health endpoint |
| `svcutils.http_middleware` | WSGI middleware: CORS, content-type check, exception recovery, trailing-slash trimming |
| `svcutils.requestid` | Propagate request ids, transaction ids and call chains through call metadata |

## Examples

### Environment variables

```python
from svcutils import env

port = env.get_as_int("PORT", 8080)
debug = env.get_as_bool("DEBUG", False)
stage = env.must_get_as_string("STAGE")  # raises env.EnvError if unset or empty
```

### Arrays

```python
from svcutils.array import intersect_string, difference_string

sorted(intersect_string(["1", "1", "2", "3"], ["2", "3", "4"]))   # ["2", "3"]
sorted(difference_string(["1", "1", "2", "3"], ["2", "3", "4"]))  # ["1", "4"]
```

### Timestamps

```python
from svcutils import timeutils

start, end = timeutils.get_periods_start_and_end_utc("201805", "201805")
# (1525132800000, 1527811199999)

try:
    timeutils.assert_milliseconds(1550837382)
except timeutils.TimestampConversionError as exc:
    print(exc, exc.timestamp)  # exc.timestamp holds the value converted to milliseconds
```

### Logging

```python
from svcutils import log

log.set_default_service("my-service")
log.with_field("application", "backend").info("started")
log.with_error(ValueError("boom")).error("something failed")
```

`panic`/`panicf` log and then raise `log.LogPanic`; `fatal`/`fatalf` log and then raise `SystemExit(1)`.

### Caching

```python
from datetime import timedelta
from svcutils.cache import Cache, key

cache = Cache(timedelta(minutes=5), 200)
k = key("get_user", "user-id")
cache.set(k, {"name": "Ada"})
try:
    value = cache.get(k)  # raises KeyError on a miss
except KeyError:
    value = None
print(cache.hits(), cache.misses(), cache.func_metrics("get_user"))
```

A time to live of zero or less disables the cache: `set` returns `False` and every `get` misses.

### Sign-in with cached tokens

```python
from svcutils import auth, cachedauth

cachedauth.configure(auth.Config(stage="sandbox"))

password = "password"
cachedauth.sign_in("user@example.com", password)
print(cachedauth.get_tokens().access_token)
```

The SSO API is reached at `https://sso-api.<stage>.<domain>`, or `https://sso-api.<domain>` for the `prod` stage; the domain is set with `auth.Config(domain=...)`.

### Forwarding CloudWatch logs to Datadog

```python
from svcutils.cloudwatch import Processor
from svcutils.datadog_client import TCPClient
from svcutils.tags import Tags

client = TCPClient("lambda-intake.logs.datadoghq.com", "10516", "placeholder", True)

tags = Tags()
tags.add_tag("env", "sandbox")

processor = Processor("my-service", client).with_tags(tags)
processor.process(aws_logs_data, None)  # the base64 "awslogs.data" field of the event
for err in processor.errors():
    print(err)
```

`svcutils.log_forwarder.handler(event, client)` does the same for a whole Lambda event, taking its settings (`SERVICE`, `STAGE`, `TAGS`, `DD_HOST`, `DD_PORT`, `DD_API_KEY`, `DD_USE_SSL`, ...) from the environment.

### WSGI middleware

```python
from svcutils.http_middleware import cors_middleware_v2, recovery, trailing_slash_middleware
from svcutils.http_server import status_not_found_handler

app = trailing_slash_middleware(cors_middleware_v2(recovery(status_not_found_handler())))
```

### Request ids

```python
from svcutils import requestid

outgoing = requestid.extend_context(incoming_metadata, "my-service")
request = requestid.extract(outgoing)
print(request.id, request.chain, request.transaction_id)
```

## What it does not do

- It is a library only: there is no command to run. `http_server.start_health_server(port)` is the only server, and it answers `/health` alone.
- `requestid` works on plain metadata (mappings or `(key, value)` pairs); it does not install itself into a gRPC server or channel.
- `http_middleware` wraps WSGI apps; it provides no router and no tracing exporter. A trace span, if any, is read from the WSGI environ under `http_server.SPAN_ENVIRON_KEY`.

## Running the tests

Install the `test` extra and run `pytest` from the project root.