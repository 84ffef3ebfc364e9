"""
Default collections managed by sheetledger.

Each collection is a CollectionDef: its default header (used when the
table is created), the header aliases of every engine role, and the
input keys callers may set.

Role aliases include the historical Spanish headers so that tables
created by earlier deployments bind without changes.

How to change safely:
    - New columns go at the end of a default header
    - Keep old header names as aliases when renaming a column
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List

from .types import CollectionDef, ColumnRole, binding

if TYPE_CHECKING:
    from ..config import TablesConfig

ARTICLES = "Articles"
FOOD = "Food"
DECOR = "Decor"
STATIONERY = "Stationery"
USERS = "Users"
COMMENTS = "Comments"
HISTORY = "History"

STOCK_COLLECTIONS = (ARTICLES, FOOD, DECOR, STATIONERY)

ID_ALIASES = ("Id",)
PRODUCT_ALIASES = ("Product", "PRODUCTO", "Producto")
STATUS_ALIASES = ("Status", "Estado", "Estado_User", "ESTADO")
RECEIVED_ALIASES = ("Received", "Ingresos")
ISSUED_ALIASES = ("Issued", "Salidas")
AVAILABLE_ALIASES = ("Available", "Unidades disponibles")
CREATED_AT_ALIASES = ("Created At", "FECHA DE INGRESO")
UPDATED_AT_ALIASES = ("Updated At", "FECHA DE ACTUALIZACION")
STORAGE_DAYS_ALIASES = ("Days In Storage", "Tiempo en Storage")
FULFILLED_AT_ALIASES = ("Fulfilled At", "Entregas fecha")
FULFILLED_QUANTITY_ALIASES = ("Fulfilled Quantity", "Entregas cantidad")
LATEST_COMMENT_ALIASES = ("Comments", "COMENTARIOS", "Comentarios")
IMAGE_ALIASES = ("Image", "Imagen")

_STOCK_ROLES = {
    ColumnRole.ID: ID_ALIASES,
    ColumnRole.LABEL: PRODUCT_ALIASES,
    ColumnRole.STATUS: STATUS_ALIASES,
    ColumnRole.RECEIVED: RECEIVED_ALIASES,
    ColumnRole.ISSUED: ISSUED_ALIASES,
    ColumnRole.AVAILABLE: AVAILABLE_ALIASES,
    ColumnRole.CREATED_AT: CREATED_AT_ALIASES,
    ColumnRole.UPDATED_AT: UPDATED_AT_ALIASES,
    ColumnRole.STORAGE_DAYS: STORAGE_DAYS_ALIASES,
    ColumnRole.FULFILLED_AT: FULFILLED_AT_ALIASES,
    ColumnRole.FULFILLED_QUANTITY: FULFILLED_QUANTITY_ALIASES,
    ColumnRole.LATEST_COMMENT: LATEST_COMMENT_ALIASES,
    ColumnRole.IMAGE: IMAGE_ALIASES,
}


def _stock_roles(**extra: tuple[str, ...]) -> dict[ColumnRole, tuple[str, ...]]:
    roles = dict(_STOCK_ROLES)
    for name, aliases in extra.items():
        roles[ColumnRole[name.upper()]] = aliases
    return roles


_PRODUCT = binding("product", role=ColumnRole.LABEL, required=True)
_RECEIVED = binding("received", role=ColumnRole.RECEIVED, kind="number", editable=False, default=0)
_IMAGE = binding("image_url", role=ColumnRole.IMAGE)


ARTICLES_DEF = CollectionDef(
    name=ARTICLES,
    table=ARTICLES,
    header=(
        "Id", "Product", "Program", "Created At", "Received", "Issued",
        "Available", "Days In Storage", "Image", "Fulfilled At",
        "Fulfilled Quantity", "Status", "Comments", "Updated At",
    ),
    roles=_stock_roles(group=("Program", "PROGRAMA", "Programa")),
    fields=(
        _PRODUCT,
        binding("program", role=ColumnRole.GROUP),
        _RECEIVED,
        _IMAGE,
    ),
    description="General articles inventory",
)

FOOD_DEF = CollectionDef(
    name=FOOD,
    table=FOOD,
    header=(
        "Id", "Product", "Created At", "Price", "Location", "Expires On",
        "Received", "Issued", "Available", "Condition", "Comments",
        "Fulfilled At", "Fulfilled Quantity", "Status", "Updated At",
    ),
    roles=_stock_roles(group=("Location", "UBICACION")),
    fields=(
        _PRODUCT,
        binding("price", "Price", "number"),
        binding("location", role=ColumnRole.GROUP),
        binding("expires_on", "Expires On", "date"),
        _RECEIVED,
        binding("condition", "Condition", default="ok"),
    ),
    description="Food inventory with expiry dates",
)

DECOR_DEF = CollectionDef(
    name=DECOR,
    table=DECOR,
    header=(
        "Id", "Product", "Type", "Price", "Received", "Issued", "Available",
        "Comments", "Image", "Status", "Updated At",
    ),
    roles=_stock_roles(group=("Type", "TIPO")),
    fields=(
        _PRODUCT,
        binding("type", role=ColumnRole.GROUP),
        binding("price", "Price", "number"),
        _RECEIVED,
        _IMAGE,
    ),
    description="Decoration inventory",
)

STATIONERY_DEF = CollectionDef(
    name=STATIONERY,
    table=STATIONERY,
    header=(
        "Id", "Product", "Created At", "Received", "Issued", "Available",
        "Days In Storage", "Image", "Status", "Comments", "Updated At",
    ),
    roles=_stock_roles(),
    fields=(
        _PRODUCT,
        _RECEIVED,
        _IMAGE,
    ),
    description="Stationery inventory",
)

USERS_DEF = CollectionDef(
    name=USERS,
    table=USERS,
    header=(
        "Id", "Full Name", "UserName", "Password Hash", "CDE", "Email",
        "Status", "Role", "Registered At",
    ),
    roles={
        ColumnRole.ID: ID_ALIASES,
        ColumnRole.LABEL: ("UserName", "Usuario"),
        ColumnRole.GROUP: ("Role", "Rol"),
        ColumnRole.STATUS: STATUS_ALIASES,
        ColumnRole.CREATED_AT: ("Registered At", "Fecha de Registro"),
    },
    fields=(
        binding("full_name", "Full Name", required=True),
        binding("username", role=ColumnRole.LABEL, required=True),
        binding("password_hash", "Password Hash"),
        binding("cde", "CDE"),
        binding("email", "Email"),
        binding("role", role=ColumnRole.GROUP, required=True),
    ),
    description="User directory (credentials are managed elsewhere)",
)

COMMENTS_DEF = CollectionDef(
    name=COMMENTS,
    table=COMMENTS,
    header=(
        "Id", "Subject Id", "Subject", "Group", "Created At", "Comment",
        "Author", "Origin", "Read", "Reply", "Replied At",
        "Hidden By Author", "Hidden By Admin", "Reply Confirmed",
    ),
    roles={
        ColumnRole.ID: ID_ALIASES,
        ColumnRole.LABEL: ("Comment", "Comentario"),
        ColumnRole.GROUP: ("Group",),
        ColumnRole.CREATED_AT: ("Created At", "Fecha"),
    },
    fields=(
        binding("subject_id", "Subject Id"),
        binding("subject", "Subject"),
        binding("group", role=ColumnRole.GROUP),
        binding("comment", role=ColumnRole.LABEL, required=True),
        binding("author", "Author", required=True),
        binding("origin", "Origin", required=True),
        binding("read", "Read", "bool", default=False),
        binding("reply", "Reply", default=""),
        binding("replied_at", "Replied At", "date"),
        binding("hidden_by_author", "Hidden By Author", "bool", default=False),
        binding("hidden_by_admin", "Hidden By Admin", "bool", default=False),
        binding("reply_confirmed", "Reply Confirmed", "bool", default=False),
    ),
    description="Comments and staff replies attached to inventory records",
)

HISTORY_DEF = CollectionDef(
    name=HISTORY,
    table=HISTORY,
    header=(
        "Id", "Subject Id", "Timestamp", "Subject", "Group",
        "Quantity Before", "Quantity After", "Action", "Actor",
        "Fulfilled At", "Fulfilled Quantity", "Origin",
    ),
    roles={
        ColumnRole.ID: ID_ALIASES,
        ColumnRole.LABEL: ("Subject", "Producto"),
        ColumnRole.GROUP: ("Group", "Programa"),
        ColumnRole.CREATED_AT: ("Timestamp", "Fecha y Hora"),
        ColumnRole.FULFILLED_AT: FULFILLED_AT_ALIASES,
        ColumnRole.FULFILLED_QUANTITY: FULFILLED_QUANTITY_ALIASES,
    },
    fields=(
        binding("subject_id", "Subject Id"),
        binding("timestamp", role=ColumnRole.CREATED_AT, kind="date"),
        binding("subject", role=ColumnRole.LABEL),
        binding("group", role=ColumnRole.GROUP),
        binding("quantity_before", "Quantity Before", "number"),
        binding("quantity_after", "Quantity After", "number"),
        binding("action", "Action"),
        binding("actor", "Actor"),
        binding("fulfilled_at", role=ColumnRole.FULFILLED_AT, kind="date"),
        binding("fulfilled_quantity", role=ColumnRole.FULFILLED_QUANTITY, kind="number"),
        binding("origin", "Origin"),
    ),
    append_only=True,
    description="Append-only audit ledger of every mutation",
)

DEFAULT_COLLECTIONS = (
    ARTICLES_DEF,
    FOOD_DEF,
    DECOR_DEF,
    STATIONERY_DEF,
    USERS_DEF,
    COMMENTS_DEF,
    HISTORY_DEF,
)


def default_collections(tables: TablesConfig | None = None) -> List[CollectionDef]:
    """The default collections, stored under the configured table names."""
    if tables is None:
        return list(DEFAULT_COLLECTIONS)
    physical = tables.as_mapping()
    return [c.with_table(physical.get(c.name, c.table)) for c in DEFAULT_COLLECTIONS]
