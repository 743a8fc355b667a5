"""HTTP operator surface."""

from tickspine.api.app import create_app

__all__ = ["create_app"]
