"""Request dependencies."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from tickspine.runtime import Runtime


def get_runtime(request: Request) -> Runtime:
    """The :class:`Runtime` the app was created with."""
    return request.app.state.runtime


RuntimeDep = Annotated[Runtime, Depends(get_runtime)]
