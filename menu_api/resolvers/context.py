import logging

from fastapi import Depends, Request
from graphql import GraphQLError
from sqlalchemy.ext.asyncio import AsyncSession
from strawberry.fastapi import BaseContext
from strawberry.types import Info

from menu_api.config import Settings
from menu_api.database import Database, get_db
from menu_api.errors import ErrorKind, ServiceError
from menu_api.gateways.base import PaymentProvider
from menu_api.security import AdminClaims, claims_from_authorization

logger = logging.getLogger(__name__)


class GraphQLContext(BaseContext):
    def __init__(
        self,
        db: AsyncSession,
        database: Database,
        settings: Settings,
        provider: PaymentProvider | None,
        producer,
        request_id: str,
        authorization: str | None,
    ) -> None:
        super().__init__()
        self.db = db
        self.database = database
        self.settings = settings
        self.provider = provider
        self.producer = producer
        self.request_id = request_id
        self.authorization = authorization


async def get_context(request: Request, db: AsyncSession = Depends(get_db)) -> GraphQLContext:
    state = request.app.state
    return GraphQLContext(
        db=db,
        database=state.database,
        settings=state.settings,
        provider=getattr(state, "provider", None),
        producer=getattr(state, "kafka_producer", None),
        request_id=getattr(request.state, "request_id", "unknown"),
        authorization=request.headers.get("authorization"),
    )


def require_admin(info: Info, role: str | None = None) -> AdminClaims:
    """Authenticate the caller from the bearer token, optionally checking its role.

    Raised as GraphQL errors (not envelopes) so clients can branch on
    ``extensions.code``.
    """
    ctx: GraphQLContext = info.context
    try:
        claims = claims_from_authorization(
            ctx.authorization, ctx.settings.jwt_secret, ctx.settings.jwt_algorithm
        )
    except ServiceError as exc:
        raise GraphQLError(exc.message, extensions={"code": ErrorKind.UNAUTHENTICATED.value})

    if role is not None and claims.role != role:
        logger.warning(
            "Admin lacks required role",
            extra={"admin_id": str(claims.id), "role": claims.role, "required": role},
        )
        raise GraphQLError(
            "You do not have permission to perform this action",
            extensions={"code": ErrorKind.FORBIDDEN.value},
        )
    return claims
