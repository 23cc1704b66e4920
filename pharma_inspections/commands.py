"""
Command layer: the caller-facing boundary of the inspection core.

Every command authenticates the session token, checks the role policy before
any mutation, runs the repository operation, then appends one audit entry
describing what happened. Commands never raise: each returns a
:class:`CommandResult` carrying either the data or an error code and message.
"""

import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from .audit_trail import AuditAction, AuditEntry, AuditFilter, AuditTrail
from .auth import AuthGateway
from .catalog import Grid, GridCatalog, Section
from .config import InspectionConfig, get_config
from .exceptions import (
    AccountDisabled,
    InspectionCoreError,
    InvalidCredentials,
    SessionInvalid,
    ValidationFailure,
)
from .inspections import InspectionLifecycle, required_roles
from .models import (
    ChangePasswordRequest,
    CreateInspectionRequest,
    CreateUserRequest,
    Inspection,
    InspectionStatus,
    ResponseInput,
    Role,
    SavedResponse,
    SessionInfo,
    UpdateUserRequest,
    User,
)
from .responses import ResponseLedger
from .storage import Database
from .users import UserDirectory

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])
M = TypeVar("M", bound=BaseModel)

SUPERVISORS = (Role.ADMIN, Role.LEAD_INSPECTOR)
ADMINS = (Role.ADMIN,)


@dataclass
class CommandResult:
    """Outcome of a command: data on success, code and message on failure."""

    ok: bool
    data: Any = None
    error: Optional[str] = None
    code: Optional[str] = None

    @classmethod
    def success(cls, data: Any = None) -> "CommandResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: InspectionCoreError) -> "CommandResult":
        return cls(ok=False, error=error.message, code=error.code)

    def to_dict(self) -> Dict[str, Any]:
        data = self.data
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json")
        elif isinstance(data, list):
            data = [
                item.model_dump(mode="json") if isinstance(item, BaseModel) else item
                for item in data
            ]
        return {"ok": self.ok, "data": data, "error": self.error, "code": self.code}


def _validation_failure(error: ValidationError) -> ValidationFailure:
    messages = []
    for err in error.errors():
        message = str(err["msg"]).replace("Value error, ", "")
        field = ".".join(str(part) for part in err["loc"])
        messages.append(f"{field}: {message}" if field else message)
    return ValidationFailure(messages[0] if messages else "Requête invalide", messages)


def command(func: F) -> F:
    """
    Decorator turning a service method into a never-raising command.

    Core errors become failed results with their code; request validation
    errors become ValidationFailure; anything else is logged and reported as
    an internal error.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> CommandResult:
        try:
            return CommandResult.success(func(*args, **kwargs))
        except InspectionCoreError as e:
            logger.debug(f"{func.__name__} failed: {e.code}: {e.message}")
            return CommandResult.failure(e)
        except ValidationError as e:
            return CommandResult.failure(_validation_failure(e))
        except Exception:
            logger.exception(f"Unexpected error in {func.__name__}")
            return CommandResult(
                ok=False, error="Erreur interne", code="internal_error"
            )

    return wrapper  # type: ignore[return-value]


def _coerce(model: Type[M], value: Union[M, Dict[str, Any], None]) -> M:
    if isinstance(value, model):
        return value
    return model.model_validate(value or {})


def _parse_status(status: Union[str, InspectionStatus]) -> InspectionStatus:
    try:
        return InspectionStatus(status)
    except ValueError:
        allowed = ", ".join(s.value for s in InspectionStatus)
        raise ValidationFailure(
            f"Statut invalide '{status}', attendu : {allowed}"
        ) from None


class InspectionService:
    """
    Facade over the core components sharing one datastore.

    Example:
        >>> service = InspectionService.open("sqlite:///./inspections.db")
        >>> token = service.login("admin", "admin123").data.token
        >>> service.list_users(token).data[0].username
        'admin'
    """

    def __init__(
        self,
        database: Database,
        catalog: Optional[GridCatalog] = None,
        audit: Optional[AuditTrail] = None,
    ):
        """
        Wire the components around a shared datastore.

        Args:
            database: Shared datastore handle
            catalog: Grid catalog used to check grid and criterion IDs;
                defaults to the configured catalog_path or the built-in grids
            audit: Audit trail; defaults to one on the same datastore
        """
        self.database = database
        self.config = database.config
        self.catalog = catalog if catalog is not None else self._default_catalog()
        self.audit = audit or AuditTrail(database)
        self.auth = AuthGateway(database)
        self.users = UserDirectory(database)
        self.inspections = InspectionLifecycle(database)
        self.responses = ResponseLedger(database)

    @classmethod
    def open(
        cls,
        url: Optional[str] = None,
        config: Optional[InspectionConfig] = None,
        catalog: Optional[GridCatalog] = None,
    ) -> "InspectionService":
        """Open the datastore, create the schema and record the start-up."""
        database = Database(url, config=config or get_config())
        database.initialize()
        service = cls(database, catalog=catalog)
        service.audit.append(AuditAction.APP_START, entity_type="system")
        return service

    def _default_catalog(self) -> GridCatalog:
        if self.config.catalog_path:
            return GridCatalog.from_directory(self.config.catalog_path)
        return GridCatalog.builtin()

    def close(self) -> None:
        self.database.close()

    # Grids

    @command
    def list_grids(self) -> List[Dict[str, Any]]:
        return self.catalog.summaries()

    @command
    def get_grid(self, grid_id: str) -> Grid:
        return self.catalog.get(grid_id)

    @command
    def get_sections(self, grid_id: str) -> List[Section]:
        """Sections of a grid; an unknown grid has none."""
        grid = self.catalog.find(grid_id)
        return list(grid.sections) if grid is not None else []

    # Authentication

    @command
    def login(self, username: str, password: str) -> SessionInfo:
        try:
            info = self.auth.login(username, password)
        except (InvalidCredentials, AccountDisabled) as e:
            self.audit.append(
                AuditAction.LOGIN_FAILED,
                actor_name=username,
                entity_type="user",
                details={"reason": e.code},
            )
            raise
        self.audit.record(info.user, AuditAction.LOGIN, "user", info.user.id)
        return info

    @command
    def logout(self, token: str) -> None:
        try:
            user: Optional[User] = self.auth.validate_session(token)
        except SessionInvalid:
            user = None
        self.auth.logout(token)
        if user is not None:
            self.audit.record(user, AuditAction.LOGOUT, "user", user.id)

    @command
    def validate_session(self, token: str) -> User:
        return self.auth.validate_session(token)

    # Users

    @command
    def list_users(self, token: str) -> List[User]:
        self.auth.authorize(token, SUPERVISORS)
        return self.users.list()

    @command
    def create_user(
        self, token: str, request: Union[CreateUserRequest, Dict[str, Any]]
    ) -> User:
        admin = self.auth.authorize(token, ADMINS)
        request = _coerce(CreateUserRequest, request)
        user = self.users.create(request)
        self.audit.record(
            admin,
            AuditAction.CREATE_USER,
            "user",
            user.id,
            details={"username": user.username, "role": user.role.value},
        )
        return user

    @staticmethod
    def _refuse_self_deactivation(admin: User, user_id: str) -> None:
        if admin.id == user_id:
            raise ValidationFailure("Impossible de désactiver son propre compte")

    @command
    def update_user(
        self,
        token: str,
        user_id: str,
        request: Union[UpdateUserRequest, Dict[str, Any]],
    ) -> User:
        admin = self.auth.authorize(token, ADMINS)
        request = _coerce(UpdateUserRequest, request)
        if request.active is False:
            self._refuse_self_deactivation(admin, user_id)
        user = self.users.update(user_id, request)
        self.audit.record(
            admin,
            AuditAction.UPDATE_USER,
            "user",
            user_id,
            details=request.model_dump(mode="json", exclude_none=True),
        )
        return user

    @command
    def change_password(self, token: str, user_id: str, new_password: str) -> None:
        """Administrators may reset any password; users may change their own."""
        actor = self.auth.validate_session(token)
        own_account = actor.id == user_id
        if not own_account:
            actor = self.auth.authorize(token, ADMINS)

        request = ChangePasswordRequest(new_password=new_password)
        self.users.change_password(
            user_id, request.new_password, keep_token=token if own_account else None
        )
        self.audit.record(actor, AuditAction.CHANGE_PASSWORD, "user", user_id)

    @command
    def deactivate_user(self, token: str, user_id: str) -> None:
        admin = self.auth.authorize(token, ADMINS)
        self._refuse_self_deactivation(admin, user_id)
        self.users.deactivate(user_id)
        self.audit.record(admin, AuditAction.DEACTIVATE_USER, "user", user_id)

    # Inspections

    def _check_grid(self, grid_id: str) -> Grid:
        grid = self.catalog.find(grid_id)
        if grid is None:
            raise ValidationFailure(f"Grille inconnue '{grid_id}'")
        return grid

    @command
    def create_inspection(
        self, token: str, request: Union[CreateInspectionRequest, Dict[str, Any]]
    ) -> str:
        user = self.auth.validate_session(token)
        request = _coerce(CreateInspectionRequest, request)
        self._check_grid(request.grid_id)

        inspection_id = self.inspections.create(request, user.id)
        self.audit.record(
            user,
            AuditAction.CREATE_INSPECTION,
            "inspection",
            inspection_id,
            details={"grid": request.grid_id, "establishment": request.establishment},
        )
        return inspection_id

    @command
    def list_inspections(
        self,
        token: str,
        mine_only: bool = False,
        status: Optional[Union[str, InspectionStatus]] = None,
    ) -> List[Inspection]:
        """Inspectors only ever see the inspections they created."""
        user = self.auth.validate_session(token)
        status_filter = _parse_status(status) if status else None
        user_filter = user.id if mine_only or user.role is Role.INSPECTOR else None
        return self.inspections.list(user_filter, status_filter)

    @command
    def get_inspection(self, token: str, inspection_id: str) -> Inspection:
        self.auth.validate_session(token)
        return self.inspections.get(inspection_id)

    @command
    def get_responses(self, token: str, inspection_id: str) -> List[SavedResponse]:
        self.auth.validate_session(token)
        return self.responses.list(inspection_id)

    @command
    def save_response(
        self,
        token: str,
        inspection_id: str,
        criterion_id: int,
        conforme: Optional[bool],
        observation: str = "",
    ) -> None:
        user = self.auth.validate_session(token)
        answer = ResponseInput(
            criterion_id=criterion_id, conforme=conforme, observation=observation
        )

        inspection = self.inspections.get(inspection_id)
        grid = self.catalog.find(inspection.grid_id)
        if grid is not None and answer.criterion_id not in {
            item.id for item in grid.criteria
        }:
            raise ValidationFailure(
                f"Critère {answer.criterion_id} absent de la grille '{grid.id}'"
            )

        self.responses.save(
            inspection_id,
            answer.criterion_id,
            answer.conforme,
            answer.observation,
            user.id,
        )
        self.audit.record(
            user,
            AuditAction.SAVE_RESPONSE,
            "response",
            f"{inspection_id}:{answer.criterion_id}",
            details={
                "conforme": answer.conforme,
                "has_obs": bool(answer.observation),
            },
        )

    @command
    def update_inspection_meta(
        self,
        token: str,
        inspection_id: str,
        request: Union[CreateInspectionRequest, Dict[str, Any]],
    ) -> None:
        user = self.auth.validate_session(token)
        request = _coerce(CreateInspectionRequest, request)
        self.inspections.update_meta(inspection_id, request)
        self.audit.record(user, AuditAction.UPDATE_META, "inspection", inspection_id)

    @command
    def set_inspection_status(
        self, token: str, inspection_id: str, status: Union[str, InspectionStatus]
    ) -> InspectionStatus:
        target = _parse_status(status)
        roles = required_roles(target)
        if roles:
            user = self.auth.authorize(token, roles)
        else:
            user = self.auth.validate_session(token)

        self.inspections.set_status(inspection_id, target, actor_id=user.id)
        self.audit.record(
            user, AuditAction.status_change(target), "inspection", inspection_id
        )
        return target

    @command
    def delete_inspection(self, token: str, inspection_id: str) -> None:
        user = self.auth.authorize(token, SUPERVISORS)
        self.inspections.delete(inspection_id)
        self.audit.record(
            user, AuditAction.DELETE_INSPECTION, "inspection", inspection_id
        )

    # Audit

    @command
    def query_audit(
        self,
        token: str,
        audit_filter: Union[AuditFilter, Dict[str, Any], None] = None,
    ) -> List[AuditEntry]:
        self.auth.authorize(token, SUPERVISORS)
        return self.audit.query(_coerce(AuditFilter, audit_filter))

    @command
    def count_audit(
        self,
        token: str,
        audit_filter: Union[AuditFilter, Dict[str, Any], None] = None,
    ) -> int:
        self.auth.authorize(token, SUPERVISORS)
        return self.audit.count(_coerce(AuditFilter, audit_filter))
