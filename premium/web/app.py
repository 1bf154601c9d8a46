"""FastAPI backend: premium-статус, привязка профиля и реферальное дерево."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from premium.context import PremiumContext, build_context
from premium.db import init_db
from premium.services.exceptions import (
    InvalidInput,
    LinkError,
    PremiumServiceError,
    TransientError,
    WalletNotPremium,
)
from premium.services.links.store import ProfileLink
from premium.services.referral.tree_builder import ReferralTree
from premium.utils.security import decode_session_token

bearer_scheme = HTTPBearer(auto_error=False)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LinkedProfileOut(ApiModel):
    profile_id: str
    linked_at: datetime

    @classmethod
    def from_link(cls, link: ProfileLink) -> "LinkedProfileOut":
        return cls(profile_id=link.profile_id, linked_at=link.linked_at)


class StatusResponse(ApiModel):
    status: str
    wallet_address: str
    linked_profile: LinkedProfileOut | None = None
    degraded: bool = False
    reason: str | None = None


class LinkRequest(ApiModel):
    profile_id: str = Field(..., min_length=1, max_length=128)


class LinkResponse(ApiModel):
    wallet_address: str
    profile_id: str
    linked_at: datetime


class TreeNodeOut(ApiModel):
    address: str
    depth: int
    parent: str | None = None
    left_child: str | None = None
    right_child: str | None = None
    balance: str
    point: int
    start_time: int


class TreeWarningOut(ApiModel):
    address: str
    depth: int
    reason: str


class TreeMeta(ApiModel):
    root_wallet: str
    max_depth: int
    total_nodes: int
    partial: bool
    warnings: list[TreeWarningOut] = Field(default_factory=list)


class TreeResponse(ApiModel):
    data: list[TreeNodeOut]
    meta: TreeMeta


def get_context(request: Request) -> PremiumContext:
    return request.app.state.context


def get_optional_wallet(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str | None:
    if credentials is None:
        return None
    try:
        payload = decode_session_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    return payload["sub"]


def get_wallet(wallet: str | None = Depends(get_optional_wallet)) -> str:
    if wallet is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Требуется токен сессии",
        )
    return wallet


def _tree_response(tree: ReferralTree) -> TreeResponse:
    return TreeResponse(
        data=[
            TreeNodeOut(
                address=node.address,
                depth=node.depth,
                parent=node.parent,
                left_child=node.left_child,
                right_child=node.right_child,
                balance=str(node.balance),
                point=node.point,
                start_time=node.start_time,
            )
            for node in tree.nodes
        ],
        meta=TreeMeta(
            root_wallet=tree.root,
            max_depth=tree.max_depth,
            total_nodes=tree.total_nodes,
            partial=tree.partial,
            warnings=[
                TreeWarningOut(address=w.address, depth=w.depth, reason=w.reason.value)
                for w in tree.warnings
            ],
        ),
    )


def _status_code_for(exc: PremiumServiceError) -> int:
    if isinstance(exc, InvalidInput):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, WalletNotPremium):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, LinkError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, TransientError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def premium_error_handler(request: Request, exc: PremiumServiceError) -> JSONResponse:
    code = _status_code_for(exc)
    if code >= 500:
        logger.error("{path}: {code} {error}", path=request.url.path, code=exc.code, error=exc)
    return JSONResponse(status_code=code, content={"error": exc.code, "message": str(exc)})


def create_app(context: PremiumContext | None = None) -> FastAPI:
    """Фабрика приложения; готовый ``context`` подставляется в тестах."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.context is None
        if owned:
            await init_db()
            app.state.context = build_context()
        yield
        if owned:
            await app.state.context.close()

    app = FastAPI(title="Premium Membership API", lifespan=lifespan)
    app.state.context = context
    app.add_exception_handler(PremiumServiceError, premium_error_handler)

    @app.get("/api/premium/status", response_model=StatusResponse)
    async def premium_status(
        wallet_query: str | None = Query(None, alias="walletAddress"),
        profile_id: str | None = Query(None, alias="profileId"),
        token_wallet: str | None = Depends(get_optional_wallet),
        ctx: PremiumContext = Depends(get_context),
    ) -> StatusResponse:
        wallet = token_wallet or wallet_query
        if not wallet:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Нужен токен сессии или параметр walletAddress",
            )
        # Автопривязка меняет данные, поэтому только для владельца кошелька.
        candidate = profile_id if token_wallet else None
        result = await ctx.resolve_status(wallet, candidate)
        return StatusResponse(
            status=result.kind.value,
            wallet_address=result.wallet,
            linked_profile=LinkedProfileOut.from_link(result.link) if result.link else None,
            degraded=result.degraded,
            reason=result.fallback_reason.value if result.fallback_reason else None,
        )

    @app.post("/api/premium/link", response_model=LinkResponse)
    async def link_profile(
        payload: LinkRequest,
        wallet: str = Depends(get_wallet),
        ctx: PremiumContext = Depends(get_context),
    ) -> LinkResponse:
        link = await ctx.link_profile(wallet, payload.profile_id)
        return LinkResponse(
            wallet_address=link.wallet_address,
            profile_id=link.profile_id,
            linked_at=link.linked_at,
        )

    @app.get("/api/premium/link", response_model=LinkResponse)
    async def current_link(
        wallet: str = Depends(get_wallet),
        ctx: PremiumContext = Depends(get_context),
    ) -> LinkResponse:
        link = await ctx.linked_profile(wallet)
        if link is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Кошелёк не привязан к профилю",
            )
        return LinkResponse(
            wallet_address=link.wallet_address,
            profile_id=link.profile_id,
            linked_at=link.linked_at,
        )

    @app.post("/api/premium/unlink")
    async def unlink_profile(
        wallet: str = Depends(get_wallet),
        ctx: PremiumContext = Depends(get_context),
    ) -> dict:
        await ctx.linker.unlink(wallet)
        return {"status": "ok"}

    @app.get("/api/premium/tree/{wallet}", response_model=TreeResponse)
    async def premium_tree(
        wallet: str,
        max_depth: int | None = Query(None, alias="maxDepth"),
        ctx: PremiumContext = Depends(get_context),
    ) -> TreeResponse:
        depth = ctx.settings.tree.default_max_depth if max_depth is None else max_depth
        tree = await ctx.build_referral_tree(wallet, depth)
        return _tree_response(tree)

    @app.get("/api/referral/tree", response_model=TreeResponse)
    async def own_referral_tree(
        wallet: str = Depends(get_wallet),
        ctx: PremiumContext = Depends(get_context),
    ) -> TreeResponse:
        tree = await ctx.tree_builder.build_user_tree(wallet)
        return _tree_response(tree)

    @app.get("/api/health")
    async def health() -> dict:
        return {"status": "ok", "service": "premium-hub"}

    return app


app = create_app()
