"""
Read-only HTTP API over the trace database.

    GET /traces            full traces, optionally filtered by query parameters
                           (method, dataset, metric, aggregation,
                           metric_aggregation, drop_level, fnr)
    GET /traces/metadata   distinct values of every filter column
"""
import asyncio

from aiohttp import web

from traces_db import FILTER_COLUMNS, load_metadata, load_traces

DB_PATH_KEY = web.AppKey("db_path", str)
NUMERIC_FILTERS = ("drop_level", "fnr")


def parse_filters(query) -> dict:
    filters = {}
    for name in FILTER_COLUMNS:
        if name not in query:
            continue
        value = query[name]
        if name in NUMERIC_FILTERS:
            try:
                value = float(value)
            except ValueError:
                raise web.HTTPBadRequest(text=f"Query parameter '{name}' must be a number, got '{value}'")
        filters[name] = value
    return filters


async def get_traces(request: web.Request) -> web.Response:
    filters = parse_filters(request.query)
    # sqlite queries run off the event loop
    traces = await asyncio.to_thread(load_traces, request.app[DB_PATH_KEY], **filters)
    return web.json_response([t.to_dict() for t in traces])


async def get_metadata(request: web.Request) -> web.Response:
    metadata = await asyncio.to_thread(load_metadata, request.app[DB_PATH_KEY])
    return web.json_response(metadata)


def create_app(db_path: str) -> web.Application:
    app = web.Application()
    app[DB_PATH_KEY] = db_path
    app.router.add_get("/traces", get_traces)
    app.router.add_get("/traces/metadata", get_metadata)
    return app


def serve(db_path: str, host: str = "127.0.0.1", port: int = 8080) -> None:
    print(f"Serving traces from {db_path} on http://{host}:{port}")
    web.run_app(create_app(db_path), host=host, port=port)
