# Overview: Response envelope helpers: {success, data?, message?, errors?}.

from __future__ import annotations

from flask import jsonify

from .pagination import Page


def ok(data=None, status: int = 200, message: str | None = None, **extra):
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    body.update(extra)
    return jsonify(body), status


def created(data, message: str | None = None):
    return ok(data, status=201, message=message)


def paginated(page: Page, serialize=lambda item: item.to_dict()):
    return ok([serialize(item) for item in page.items], count=len(page.items), pagination=page.meta())
