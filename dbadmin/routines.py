"""Stored routine management over the collaborator's generic SQL entry point."""

import structlog

from dbadmin.collaborator import SQLCollaborator
from dbadmin.console import check_statement
from dbadmin.errors import CollaboratorError, InvalidRequest, NotFound
from dbadmin.models.entities import Routine, RoutineKind

logger = structlog.get_logger()


class RoutineManager:
    """
    Lists, inspects, creates and drops routines.

    Routine bodies are fetched on demand and cached for the lifetime of the
    manager. Creating or dropping a routine clears the workspace's bodies.
    """

    def __init__(self, collaborator: SQLCollaborator) -> None:
        self._collaborator = collaborator
        self._bodies: dict[tuple[str, RoutineKind, str], str] = {}

    @property
    def _dialect(self):
        return self._collaborator.dialect

    def list_routines(self, workspace_id: str) -> list[Routine]:
        """List routines without their bodies."""
        result = self._collaborator.execute_sql(workspace_id, self._dialect.list_routines_sql())
        routines: list[Routine] = []
        seen: set[tuple[str, RoutineKind]] = set()
        for row in result.rows:
            routine = self._dialect.routine_from_row(row)
            key = (routine.name, routine.kind)
            if key in seen:
                continue
            seen.add(key)
            routines.append(routine)
        return routines

    def get_routine_body(self, workspace_id: str, name: str, kind: RoutineKind) -> str:
        """
        Return a routine's definition text.

        Raises:
            NotFound: no routine of that name and kind
        """
        cache_key = (workspace_id, kind, name)
        if cache_key in self._bodies:
            return self._bodies[cache_key]

        statement, params = self._dialect.routine_definition_sql(name, kind)
        result = self._collaborator.execute_sql(workspace_id, statement, params or None)
        body = self._dialect.definition_from_rows(result.rows)
        if body is None:
            raise NotFound(
                f"{kind.value.title()} {name} not found",
                {"name": name, "kind": kind.value},
            )
        self._bodies[cache_key] = body
        return body

    def get_routine(self, workspace_id: str, name: str, kind: RoutineKind) -> Routine:
        for routine in self.list_routines(workspace_id):
            if routine.name == name and routine.kind == kind:
                return routine.model_copy(
                    update={"body": self.get_routine_body(workspace_id, name, kind)}
                )
        raise NotFound(
            f"{kind.value.title()} {name} not found",
            {"name": name, "kind": kind.value},
        )

    def create_routine(self, workspace_id: str, definition: str) -> None:
        """
        Run a full routine definition statement as given.

        Only a single CREATE statement for a routine is accepted; the body is
        not parsed and engine errors come back verbatim as CollaboratorError.

        Raises:
            ForbiddenStatement: the text holds a statement the console refuses
            InvalidRequest: empty text, or anything but a routine definition
        """
        check_statement(definition)
        if not self._dialect.is_routine_definition(definition):
            raise InvalidRequest(
                "Routine definition must be a single CREATE statement for a routine",
                {"dialect": self._dialect.name, "statement_preview": definition.strip()[:100]},
            )
        self._collaborator.execute_sql(workspace_id, definition)
        self._forget(workspace_id)

    def drop_routine(self, workspace_id: str, name: str, kind: RoutineKind) -> None:
        """Drop a routine. Irreversible; confirmation happens before this call."""
        if not any(r.name == name and r.kind == kind for r in self.list_routines(workspace_id)):
            raise NotFound(
                f"{kind.value.title()} {name} not found",
                {"name": name, "kind": kind.value},
            )
        try:
            self._collaborator.execute_sql(workspace_id, self._dialect.drop_routine_sql(name, kind))
        except CollaboratorError:
            logger.warning("drop_routine_failed", workspace_id=workspace_id, routine=name, kind=kind.value)
            raise
        finally:
            self._forget(workspace_id)

    def _forget(self, workspace_id: str) -> None:
        for key in [k for k in self._bodies if k[0] == workspace_id]:
            del self._bodies[key]
