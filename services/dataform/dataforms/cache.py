"""Last known schema per owner, used only to prime clients before a fetch."""
from __future__ import annotations

import json
from typing import Any, Dict

from django.conf import settings
from django.core.cache import cache
from django.core.serializers.json import DjangoJSONEncoder

from .schema import Schema


class LastKnownSchemaCache:
    """Opportunistic copy of the most recently loaded or saved schema.

    Entries are never read back by the engine; the database stays
    authoritative and a miss is always acceptable.
    """

    prefix = "dataforms:last-known"

    def __init__(self, backend=None, timeout: int | None = None) -> None:
        self.backend = backend or cache
        self.timeout = timeout if timeout is not None else getattr(settings, "DATAFORM_SCHEMA_CACHE_TIMEOUT", 86400)

    def key(self, owner_id: str) -> str:
        return f"{self.prefix}:{owner_id}"

    def remember(self, schema: Schema) -> None:
        if not schema.owner_id:
            return
        payload = json.loads(json.dumps(schema.to_dict(), cls=DjangoJSONEncoder))
        self.backend.set(self.key(schema.owner_id), payload, self.timeout)

    def peek(self, owner_id: str) -> Dict[str, Any] | None:
        return self.backend.get(self.key(owner_id))

    def forget(self, owner_id: str, form_id: int | None = None) -> None:
        cached = self.peek(owner_id)
        if cached is None:
            return
        if form_id is None or cached.get("id") == form_id:
            self.backend.delete(self.key(owner_id))


last_known_schemas = LastKnownSchemaCache()
