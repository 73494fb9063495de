"""Administrative HTTP surface."""

from flask import Flask

from .permissions import permissions_bp
from .roles import roles_bp


def register_blueprints(app: Flask) -> None:
    app.register_blueprint(roles_bp)
    app.register_blueprint(permissions_bp)


__all__ = ['roles_bp', 'permissions_bp', 'register_blueprints']
