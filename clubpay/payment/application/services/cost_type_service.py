"""Management of obligation categories (cost types)."""

from ....exceptions import DuplicateError, NotFoundError, ValidationError
from ....utils.logging import get_logger
from ...domain.enums import EntityType
from ...domain.models import CostType
from ...infrastructure.store import InMemoryStore

logger = get_logger(__name__)


class CostTypeService:
    """Add, rename and remove cost types.

    Names are trimmed and unique. Renaming also renames the ``cost_type`` of
    every obligation using the old name.
    """

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    def names(self) -> list[str]:
        return [cost_type.name for cost_type in self.store.get_all(EntityType.COST_TYPES)]

    def add(self, name: str) -> CostType:
        name = self._clean(name)
        if self._find(name) is not None:
            raise DuplicateError("Cost type already exists", field="name", value=name)

        cost_type = self.store.create(EntityType.COST_TYPES, CostType(name=name))
        logger.info("cost_type_added", name=name)
        return cost_type

    def rename(self, old_name: str, new_name: str) -> CostType:
        new_name = self._clean(new_name)
        if self._find(new_name) is not None:
            raise DuplicateError("Cost type already exists", field="name", value=new_name)
        cost_type = self._get(old_name)

        self.store.update(EntityType.COST_TYPES, cost_type.id, {"name": new_name})
        obligations = self.store.filter(EntityType.OBLIGATIONS, lambda o: o.cost_type == old_name)
        for obligation in obligations:
            self.store.update(EntityType.OBLIGATIONS, obligation.id, {"cost_type": new_name})

        logger.info(
            "cost_type_renamed", old_name=old_name, new_name=new_name, obligations=len(obligations)
        )
        return self.store.get(EntityType.COST_TYPES, cost_type.id)

    def remove(self, name: str) -> None:
        cost_type = self._get(name)
        in_use = self.store.filter(EntityType.OBLIGATIONS, lambda o: o.cost_type == name)
        if in_use:
            raise ValidationError(
                "Cost type is still used by obligations",
                field="name",
                value=name,
                constraint="unused",
            )

        self.store.delete(EntityType.COST_TYPES, cost_type.id)
        logger.info("cost_type_removed", name=name)

    def _clean(self, name: str) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("Cost type name is required", field="name", constraint="required")
        return cleaned

    def _find(self, name: str) -> CostType | None:
        for cost_type in self.store.get_all(EntityType.COST_TYPES):
            if cost_type.name == name:
                return cost_type
        return None

    def _get(self, name: str) -> CostType:
        cost_type = self._find(name)
        if cost_type is None:
            raise NotFoundError("Cost type not found", entity_type="cost_types", entity_id=name)
        return cost_type
