"""
Business logic services.

Each service handles one stage of the import pipeline.
"""

from services.inventory_service import InventoryService, get_inventory_service
from services.directory_service import DirectoryService, get_directory_service
from services.classification_service import (
    ClassificationService,
    get_classification_service,
    classify,
    match_rule,
    get_nested_value,
)
from services.import_filter_service import (
    apply_filter,
    get_filter,
    last_online_rule,
    get_filter_description,
)
from services.entity_resolver_service import (
    EntityResolverService,
    get_entity_resolver_service,
    normalize_username,
    build_request,
)
from services.row_transformer_service import finalize_row, finalize_rows, plan_write
from services.progress_channel_service import (
    ProgressChannel,
    ProgressSubscriber,
    SubscriberState,
    get_progress_channel,
)
from services.import_service import (
    ImportService,
    get_import_service,
    normalize_import_source,
)
from services.import_executor_service import (
    ImportExecutor,
    prepare_import,
    generate_session_id,
)

__all__ = [
    "InventoryService",
    "get_inventory_service",
    "DirectoryService",
    "get_directory_service",
    "ClassificationService",
    "get_classification_service",
    "classify",
    "match_rule",
    "get_nested_value",
    "apply_filter",
    "get_filter",
    "last_online_rule",
    "get_filter_description",
    "EntityResolverService",
    "get_entity_resolver_service",
    "normalize_username",
    "build_request",
    "finalize_row",
    "finalize_rows",
    "plan_write",
    "ProgressChannel",
    "ProgressSubscriber",
    "SubscriberState",
    "get_progress_channel",
    "ImportService",
    "get_import_service",
    "normalize_import_source",
    "ImportExecutor",
    "prepare_import",
    "generate_session_id",
]
