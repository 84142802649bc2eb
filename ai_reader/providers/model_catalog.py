import logging
from typing import Dict, List, Optional

from ai_reader.common.models import ReaderSettings, RequestKind
from ai_reader.config.base.models import MODEL_ORDERS

logger = logging.getLogger("AIReaderGateway")


class ModelCatalog:
    """Static canonical model orders per request kind, ranked best-first."""

    def __init__(self, orders: Optional[Dict[str, List[str]]] = None):
        source = orders if orders is not None else MODEL_ORDERS
        self._orders = {kind: tuple(models) for kind, models in source.items()}

    def canonical(self, kind: RequestKind) -> List[str]:
        return list(self._orders.get(RequestKind(kind).value, ()))

    def stack(self, kind: RequestKind, preferred_model: str, fallback_enabled: bool) -> List[str]:
        """Returns the models to attempt, in order.

        With fallback disabled only the preferred model is returned, even when it
        is not in the canonical order. With fallback enabled the preferred model is
        the floor: the canonical order is sliced from its position, so better models
        ranked before it are never attempted. An unknown preferred model yields the
        full canonical order.
        """
        if not fallback_enabled:
            return [preferred_model]

        order = self.canonical(kind)
        if preferred_model in order:
            return order[order.index(preferred_model):]
        return order

    def stack_for(self, kind: RequestKind, settings: ReaderSettings) -> List[str]:
        return self.stack(kind, settings.preferred_model(RequestKind(kind)), settings.use_fallback)
