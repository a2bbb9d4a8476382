"""Route blueprints for the member registration backend."""

from .districts import districts_blueprint
from .pages import pages_blueprint
from .register import register_blueprint

__all__ = ["districts_blueprint", "pages_blueprint", "register_blueprint"]
