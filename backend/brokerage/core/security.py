"""
身份与权限解析

身份由上游协作方提供（请求头 X-User-Id / X-User-Role），本模块只负责
在每个请求开始时把角色解析为四种固定访问策略之一：customer / supplier / courier / staff。
各服务只读取策略上的能力位，不再各自判断角色。
"""
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header

from brokerage.core.middleware import AuthenticationException, AuthorizationError


class Role:
    """用户角色"""
    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    COURIER = "courier"
    EMPLOYEE = "employee"
    ADMIN = "admin"

    ALL = (CUSTOMER, SUPPLIER, COURIER, EMPLOYEE, ADMIN)
    STAFF = (EMPLOYEE, ADMIN)


class PolicyKind:
    """访问策略类别"""
    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    COURIER = "courier"
    STAFF = "staff"


@dataclass(frozen=True)
class Actor:
    """当前操作者"""
    user_id: UUID
    role: str


@dataclass(frozen=True)
class AccessPolicy:
    """每个请求解析一次的读写策略"""
    actor: Actor
    kind: str
    can_request_quotes: bool = False
    can_price_quotes: bool = False
    can_respond_to_quotes: bool = False
    can_assign_suppliers: bool = False
    can_view_recommendations: bool = False
    can_manage_customers: bool = False
    can_manage_own_prices: bool = False
    can_act_for_supplier: bool = False
    can_fulfil_as_supplier: bool = False
    can_carry_jobs: bool = False
    can_cancel_jobs: bool = False
    can_rate: bool = False
    can_configure_weights: bool = False

    @property
    def user_id(self) -> UUID:
        return self.actor.user_id

    @property
    def is_staff(self) -> bool:
        return self.kind == PolicyKind.STAFF

    def require(self, capability: str, message: Optional[str] = None) -> None:
        """缺少能力位时抛出 AuthorizationError"""
        if not getattr(self, capability, False):
            raise AuthorizationError(message or f"角色 {self.actor.role} 无权执行该操作")


def resolve_policy(actor: Actor) -> AccessPolicy:
    """将角色解析为固定访问策略"""
    role = actor.role

    if role == Role.CUSTOMER:
        return AccessPolicy(
            actor=actor,
            kind=PolicyKind.CUSTOMER,
            can_request_quotes=True,
            can_respond_to_quotes=True,
        )

    if role == Role.SUPPLIER:
        return AccessPolicy(
            actor=actor,
            kind=PolicyKind.SUPPLIER,
            can_manage_own_prices=True,
            can_fulfil_as_supplier=True,
        )

    if role == Role.COURIER:
        return AccessPolicy(
            actor=actor,
            kind=PolicyKind.COURIER,
            can_carry_jobs=True,
        )

    if role in Role.STAFF:
        return AccessPolicy(
            actor=actor,
            kind=PolicyKind.STAFF,
            can_request_quotes=True,
            can_price_quotes=True,
            can_respond_to_quotes=True,
            can_assign_suppliers=True,
            can_view_recommendations=True,
            can_manage_customers=True,
            can_manage_own_prices=True,
            can_act_for_supplier=True,
            can_cancel_jobs=True,
            can_rate=True,
            can_configure_weights=(role == Role.ADMIN),
        )

    raise AuthorizationError(f"未知角色: {role}")


# ==================== FastAPI 依赖 ====================

async def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Actor:
    """从身份协作方提供的请求头构造操作者"""
    if not x_user_id or not x_user_role:
        raise AuthenticationException("缺少身份信息")

    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise AuthenticationException("用户ID格式不正确")

    role = x_user_role.strip().lower()
    if role not in Role.ALL:
        raise AuthorizationError(f"未知角色: {x_user_role}")

    return Actor(user_id=user_id, role=role)


async def get_access_policy(actor: Actor = Depends(get_current_actor)) -> AccessPolicy:
    """FastAPI依赖：解析访问策略"""
    return resolve_policy(actor)
