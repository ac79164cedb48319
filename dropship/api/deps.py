"""FastAPI dependencies: the process container and the calling operator."""
from typing import Annotated, Optional

from fastapi import Depends, Header, Request

from dropship.container import Container
from dropship.errors import UnauthorizedError
from dropship.models import OperatorRole, Principal
from dropship.services.fulfillment import FulfillmentService, FulfillmentStateMachine
from dropship.services.import_service import ImportService


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_principal(
    x_operator_id: Annotated[Optional[str], Header()] = None,
    x_operator_role: Annotated[Optional[str], Header()] = None,
) -> Principal:
    """Principal asserted by the gateway; unknown roles are customers."""
    try:
        role = OperatorRole((x_operator_role or "").lower())
    except ValueError:
        role = OperatorRole.CUSTOMER
    return Principal(user_id=x_operator_id or "", role=role)


def require_operator(principal: Annotated[Principal, Depends(get_principal)]) -> Principal:
    if not principal.user_id or not principal.is_operator:
        raise UnauthorizedError("Unauthorized")
    return principal


def get_import_service(container: Annotated[Container, Depends(get_container)]) -> ImportService:
    return container.import_service


def get_state_machine(container: Annotated[Container, Depends(get_container)]) -> FulfillmentStateMachine:
    return container.state_machine


def get_fulfillment_service(container: Annotated[Container, Depends(get_container)]) -> FulfillmentService:
    return container.fulfillment


Operator = Annotated[Principal, Depends(require_operator)]
Imports = Annotated[ImportService, Depends(get_import_service)]
StateMachine = Annotated[FulfillmentStateMachine, Depends(get_state_machine)]
Fulfillment = Annotated[FulfillmentService, Depends(get_fulfillment_service)]
