"""Guy profiles: search, popularity, creation and cascading delete."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status

from teake.api.deps import get_verified_user, guy_repository
from teake.api.schemas import CreateGuyRequest, envelope, paginated
from teake.domain.common.query import TextSearchFilter
from teake.domain.guys.repo import GuyRepository
from teake.domain.identity.models import User
from teake.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/guys", tags=["guys"])


@router.get("/search")
async def search_guys(
	q: str = Query(..., min_length=1),
	page: int = Query(default=1),
	limit: int = Query(default=10),
	_: AuthenticatedUser = Depends(get_current_user),
	guys: GuyRepository = Depends(guy_repository),
) -> dict:
	return paginated(await guys.search_guys(q, TextSearchFilter(page=page, limit=limit)))


@router.get("/popular")
async def popular_guys(
	limit: int = Query(default=10),
	_: AuthenticatedUser = Depends(get_current_user),
	guys: GuyRepository = Depends(guy_repository),
) -> dict:
	return envelope(await guys.find_popular_guys(limit))


@router.get("/{guy_id}")
async def guy_profile(
	guy_id: str,
	_: AuthenticatedUser = Depends(get_current_user),
	guys: GuyRepository = Depends(guy_repository),
) -> dict:
	found = await guys.find_with_stories(guy_id)
	if found is None:
		raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="guy_not_found")
	return envelope(found["guy"], stories=[story.to_dict() for story in found["stories"]])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_guy(
	payload: CreateGuyRequest,
	creator: User = Depends(get_verified_user),
	guys: GuyRepository = Depends(guy_repository),
) -> dict:
	guy = await guys.create(
		{
			"id": str(uuid.uuid4()),
			"created_by_user_id": creator.id,
			**payload.model_dump(),
		}
	)
	return envelope(guy)


@router.delete("/{guy_id}")
async def delete_guy(
	guy_id: str,
	user: AuthenticatedUser = Depends(get_current_user),
	guys: GuyRepository = Depends(guy_repository),
) -> dict:
	if not await guys.is_owner(guy_id, user.id):
		raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="not_owner")
	if not await guys.delete_with_stories(guy_id):
		raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="guy_not_found")
	return envelope(deleted=True)
