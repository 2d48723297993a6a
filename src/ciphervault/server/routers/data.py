# 数据项接口，所有操作都限定在当前登录用户名下
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlmodel import Session

from ...core.models import (
    DataItemPayload,
    DataItemRequest,
    DataItemsResponse,
    MessageResponse,
    encode_payload,
)
from ..database import get_session
from ..errors import InvalidInput
from ..models import DataItem, ItemEdit, ItemFilter, ItemListFilter, User
from ..repositories.data_items import DataItemRepo
from ..services.data_items import DataItemService
from .auth import get_current_user

router = APIRouter()


def get_data_item_service(
    request: Request, session: Session = Depends(get_session)
) -> DataItemService:
    return DataItemService(DataItemRepo(session), request.app.state.object_store)


def to_payload(item: DataItem) -> DataItemPayload:
    return DataItemPayload(
        id=item.id,
        type=item.type,
        data=encode_payload(item.data or b""),
        meta=item.meta,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


def read_payload(item: DataItemPayload) -> Optional[bytes]:
    try:
        return item.payload_bytes()
    except ValueError as e:
        raise InvalidInput(str(e)) from e


@router.get("/data", response_model=DataItemsResponse)
def get_data(
    item_id: Optional[str] = Query(default=None, alias="id"),
    item_type: Optional[str] = Query(default=None, alias="type"),
    url: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    service: DataItemService = Depends(get_data_item_service),
):
    # owner_id 总是取自令牌，客户端无法指定
    obj, found = service.get(
        ItemFilter(id=item_id, owner_id=current_user.id, type=item_type, url=url)
    )
    if not found:
        return DataItemsResponse(items=[])
    return DataItemsResponse(items=[to_payload(obj)])


@router.get("/data/all", response_model=DataItemsResponse)
def list_data(
    current_user: User = Depends(get_current_user),
    service: DataItemService = Depends(get_data_item_service),
):
    items, _ = service.list(ItemListFilter(owner_id=current_user.id))
    return DataItemsResponse(items=[to_payload(item) for item in items])


@router.post("/data", response_model=MessageResponse)
def create_data(
    payload: DataItemRequest,
    current_user: User = Depends(get_current_user),
    service: DataItemService = Depends(get_data_item_service),
):
    item = payload.item
    service.create(
        ItemEdit(
            id=item.id,
            owner_id=current_user.id,
            type=item.type,
            data=read_payload(item),
            meta=item.meta,
        )
    )
    return MessageResponse(message="Success")


@router.put("/data", response_model=MessageResponse)
def update_data(
    payload: DataItemRequest,
    current_user: User = Depends(get_current_user),
    service: DataItemService = Depends(get_data_item_service),
):
    item = payload.item
    if not item.id:
        raise InvalidInput("id is required")

    # 空字段表示不修改
    edit = ItemEdit(
        id=item.id,
        type=item.type or None,
        data=read_payload(item),
        meta=item.meta,
    )
    service.update(ItemFilter(id=item.id, owner_id=current_user.id), edit)
    return MessageResponse(message="Update successful")


@router.delete("/data/{item_id}", response_model=MessageResponse)
def delete_data(
    item_id: str,
    current_user: User = Depends(get_current_user),
    service: DataItemService = Depends(get_data_item_service),
):
    service.delete(ItemFilter(id=item_id, owner_id=current_user.id))
    return MessageResponse(message="Delete successful")
