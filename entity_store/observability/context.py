from __future__ import annotations

import contextvars
import uuid
from contextlib import contextmanager
from typing import Iterator


request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    return request_id_var.get()


@contextmanager
def request_context(request_id: str | None = None) -> Iterator[str]:
    """
    Bind a request id for the duration of the block so every log line emitted
    by store operations carries it. Generates a UUIDv4 when none is given.
    """
    rid = (str(request_id).strip() if request_id else "") or str(uuid.uuid4())
    token = request_id_var.set(rid)
    try:
        yield rid
    finally:
        request_id_var.reset(token)
