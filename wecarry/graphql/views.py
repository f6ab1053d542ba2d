"""Flask view serving the GraphQL schema."""

from __future__ import annotations

import logging
from typing import Any, Dict

from flask import Blueprint
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from strawberry.flask.views import GraphQLView

from wecarry.core.bootstrap import get_core
from wecarry.graphql.schema import schema

logger = logging.getLogger(__name__)

graphql_bp = Blueprint("graphql_api", __name__)


class WeCarryGraphQLView(GraphQLView):
    """Resolves the calling user from the ``Authorization: Bearer`` JWT."""

    def get_context(self, request, response) -> Dict[str, Any]:
        user_id = None
        try:
            verify_jwt_in_request(optional=True)
            identity = get_jwt_identity()
            user_id = int(identity) if identity is not None else None
        except (JWTExtendedException, PyJWTError, ValueError) as exc:
            logger.info("Ignoring invalid bearer token: %s", exc)
        return {"core": get_core(), "user_id": user_id, "request": request, "response": response}


graphql_bp.add_url_rule(
    "/graphql",
    view_func=WeCarryGraphQLView.as_view("graphql", schema=schema, graphql_ide=None),
)
