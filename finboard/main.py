import logging
from datetime import date, datetime
from decimal import Decimal

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection

from finboard.cashflow import KIND_ORDER, list_occurrences_in_range
from finboard.dashboard import DashboardData, DashboardInput, build_dashboard_data
from finboard.date_math import parse_iso_date
from finboard.recurrence import EntryKind, RecurringEntry, normalize_frequency
from finboard.settings import clamp_upcoming_limit, clamp_window_size, get_settings
from finboard.wallet_totals import (
    DEFAULT_CATEGORY_COLOR,
    ExpenseCategory,
    Snapshot,
    SnapshotLineDetail,
    normalize_wallet_type,
    totals_by_wallet_type,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.database_url, connect_args=connect_args)
metadata = MetaData()

PREFERENCE_CASHFLOW_WINDOW = "cashflow_window"
PREFERENCE_UPCOMING_LIMIT = "upcoming_limit"

wallets = Table(
    "wallets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("type", String(20), nullable=False),
    Column("currency", String(3), nullable=False, server_default="EUR"),
    Column("active", Boolean, nullable=False, server_default="1"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

expense_categories = Table(
    "expense_categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("color", String(20), nullable=False, server_default=DEFAULT_CATEGORY_COLOR),
    Column("active", Boolean, nullable=False, server_default="1"),
    UniqueConstraint("name", name="uq_expense_categories_name"),
)


def _entry_columns() -> list[Column]:
    return [
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("name", String(255), nullable=False),
        Column("amount", Numeric(12, 2), nullable=False),
        Column("start_date", Date, nullable=False),
        Column("recurrence_frequency", String(20)),
        Column("recurrence_interval", Integer),
        Column("one_shot", Boolean, nullable=False, server_default="0"),
        Column("active", Boolean, nullable=False, server_default="1"),
        Column("wallet_id", Integer, ForeignKey("wallets.id")),
        Column("note", String(500)),
        Column("created_at", DateTime, nullable=False, server_default=func.now()),
    ]


income_entries = Table("income_entries", metadata, *_entry_columns())

expense_entries = Table(
    "expense_entries",
    metadata,
    *_entry_columns(),
    Column("expense_category_id", Integer, ForeignKey("expense_categories.id")),
)

snapshots = Table(
    "snapshots",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("date", Date, nullable=False),
    Column("note", String(500)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

snapshot_lines = Table(
    "snapshot_lines",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("snapshot_id", Integer, ForeignKey("snapshots.id"), nullable=False),
    Column("wallet_id", Integer, ForeignKey("wallets.id"), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    UniqueConstraint("snapshot_id", "wallet_id", name="uq_snapshot_lines_snapshot_wallet"),
)

preferences = Table(
    "preferences",
    metadata,
    Column("key", String(100), primary_key=True),
    Column("value", String(255), nullable=False),
)


@app.on_event("startup")
def init_db() -> None:
    metadata.create_all(engine)
    logger.info("Database ready at %s", engine.url.render_as_string(hide_password=True))


class WalletPayload(BaseModel):
    name: str
    type: str
    currency: str = "EUR"
    active: bool = True

    @classmethod
    def validate_payload(cls, payload: "WalletPayload") -> "WalletPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Wallet name required.")
        wallet_type = normalize_wallet_type(payload.type)
        if wallet_type is None:
            raise ValueError("Wallet type must be LIQUIDITY or INVEST.")
        payload.type = wallet_type.value
        payload.currency = normalize_currency(payload.currency)
        return payload


class WalletResponse(WalletPayload):
    id: int
    created_at: datetime | None = None


class CategoryPayload(BaseModel):
    name: str
    color: str | None = None
    active: bool = True

    @classmethod
    def validate_payload(cls, payload: "CategoryPayload") -> "CategoryPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Category name required.")
        payload.color = payload.color.strip() if payload.color else DEFAULT_CATEGORY_COLOR
        return payload


class CategoryResponse(BaseModel):
    id: int
    name: str
    color: str
    active: bool


class EntryPayload(BaseModel):
    name: str
    amount: Decimal
    start_date: date
    recurrence_frequency: str | None = None
    recurrence_interval: int | None = 1
    one_shot: bool = False
    active: bool = True
    wallet_id: int | None = None
    expense_category_id: int | None = None
    note: str | None = None

    @classmethod
    def validate_payload(cls, payload: "EntryPayload") -> "EntryPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Entry name required.")
        if payload.amount <= 0:
            raise ValueError("Entry amount must be greater than zero.")
        payload.note = payload.note.strip() if payload.note else None
        if payload.one_shot:
            payload.recurrence_frequency = None
            payload.recurrence_interval = None
            return payload
        frequency = normalize_frequency(payload.recurrence_frequency)
        if frequency is None:
            raise ValueError("Recurring entries need a WEEKLY, MONTHLY or YEARLY frequency.")
        if payload.recurrence_interval is None or payload.recurrence_interval < 1:
            raise ValueError("Recurrence interval must be at least 1.")
        payload.recurrence_frequency = frequency.value
        return payload


class EntryResponse(BaseModel):
    id: int
    kind: str
    name: str
    amount: Decimal
    start_date: date
    recurrence_frequency: str | None = None
    recurrence_interval: int | None = None
    one_shot: bool
    active: bool
    wallet_id: int | None = None
    expense_category_id: int | None = None
    note: str | None = None
    created_at: datetime | None = None


class SnapshotLinePayload(BaseModel):
    wallet_id: int
    amount: Decimal


class SnapshotPayload(BaseModel):
    date: date
    note: str | None = None
    lines: list[SnapshotLinePayload]

    @classmethod
    def validate_payload(cls, payload: "SnapshotPayload") -> "SnapshotPayload":
        if not payload.lines:
            raise ValueError("Snapshot needs at least one line.")
        wallet_ids = [line.wallet_id for line in payload.lines]
        if len(set(wallet_ids)) != len(wallet_ids):
            raise ValueError("Each wallet may appear only once per snapshot.")
        payload.note = payload.note.strip() if payload.note else None
        return payload


class SnapshotLineResponse(BaseModel):
    wallet_id: int
    wallet_name: str | None = None
    wallet_type: str | None = None
    currency: str | None = None
    amount: Decimal


class SnapshotResponse(BaseModel):
    id: int
    date: date
    note: str | None = None
    liquidity: Decimal
    investments: Decimal
    net_worth: Decimal
    lines: list[SnapshotLineResponse]


class SnapshotSummaryResponse(BaseModel):
    id: int
    date: date
    note: str | None = None


class PreferencesPayload(BaseModel):
    cashflow_window: int | None = None
    upcoming_limit: int | None = None


class PreferencesResponse(BaseModel):
    cashflow_window: int
    upcoming_limit: int


class OccurrenceResponse(BaseModel):
    entry_id: int
    kind: str
    date: date
    amount: Decimal
    name: str


def normalize_currency(value: str) -> str:
    normalized = value.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


def resolve_entry_kind(value: str) -> EntryKind:
    try:
        return EntryKind(value.strip().lower())
    except ValueError as exc:
        raise HTTPException(status_code=404, detail="Unknown entry kind.") from exc


def entries_table(kind: EntryKind) -> Table:
    return income_entries if kind == EntryKind.income else expense_entries


def entry_from_row(row, kind: EntryKind) -> RecurringEntry:
    frequency = row["recurrence_frequency"]
    return RecurringEntry(
        id=row["id"],
        kind=kind,
        name=row["name"],
        amount=row["amount"],
        start_date=row["start_date"],
        recurrence_frequency=normalize_frequency(frequency) if frequency else None,
        recurrence_interval=row["recurrence_interval"],
        one_shot=bool(row["one_shot"]),
        active=bool(row["active"]),
        wallet_id=row["wallet_id"],
        expense_category_id=row.get("expense_category_id"),
        note=row["note"],
    )


def entry_response(row, kind: EntryKind) -> EntryResponse:
    return EntryResponse(
        id=row["id"],
        kind=kind.value,
        name=row["name"],
        amount=row["amount"],
        start_date=row["start_date"],
        recurrence_frequency=row["recurrence_frequency"],
        recurrence_interval=row["recurrence_interval"],
        one_shot=bool(row["one_shot"]),
        active=bool(row["active"]),
        wallet_id=row["wallet_id"],
        expense_category_id=row.get("expense_category_id"),
        note=row["note"],
        created_at=row["created_at"],
    )


def fetch_entries(conn: Connection, kind: EntryKind) -> list[RecurringEntry]:
    table = entries_table(kind)
    rows = conn.execute(select(table).order_by(table.c.id)).mappings().all()
    return [entry_from_row(row, kind) for row in rows]


def fetch_categories(conn: Connection) -> list[ExpenseCategory]:
    rows = conn.execute(
        select(expense_categories).order_by(expense_categories.c.name)
    ).mappings().all()
    return [
        ExpenseCategory(
            id=row["id"],
            name=row["name"],
            color=row["color"] or DEFAULT_CATEGORY_COLOR,
            active=bool(row["active"]),
        )
        for row in rows
    ]


def fetch_snapshot_lines(
    conn: Connection, snapshot_id: int | None = None
) -> dict[int, list[SnapshotLineDetail]]:
    stmt = select(
        snapshot_lines.c.snapshot_id,
        snapshot_lines.c.wallet_id,
        snapshot_lines.c.amount,
        wallets.c.name.label("wallet_name"),
        wallets.c.type.label("wallet_type"),
        wallets.c.currency,
    ).select_from(
        snapshot_lines.outerjoin(wallets, snapshot_lines.c.wallet_id == wallets.c.id)
    ).order_by(snapshot_lines.c.snapshot_id, snapshot_lines.c.id)
    if snapshot_id is not None:
        stmt = stmt.where(snapshot_lines.c.snapshot_id == snapshot_id)

    lines_by_snapshot: dict[int, list[SnapshotLineDetail]] = {}
    for row in conn.execute(stmt).mappings().all():
        lines_by_snapshot.setdefault(row["snapshot_id"], []).append(
            SnapshotLineDetail(
                snapshot_id=row["snapshot_id"],
                wallet_id=row["wallet_id"],
                amount=row["amount"],
                wallet_name=row["wallet_name"],
                wallet_type=normalize_wallet_type(row["wallet_type"]),
                currency=row["currency"],
            )
        )
    return lines_by_snapshot


def snapshot_response(row, lines: list[SnapshotLineDetail]) -> SnapshotResponse:
    totals = totals_by_wallet_type(lines)
    return SnapshotResponse(
        id=row["id"],
        date=row["date"],
        note=row["note"],
        liquidity=totals.liquidity,
        investments=totals.investments,
        net_worth=totals.net_worth,
        lines=[
            SnapshotLineResponse(
                wallet_id=line.wallet_id,
                wallet_name=line.wallet_name,
                wallet_type=line.wallet_type.value if line.wallet_type else None,
                currency=line.currency,
                amount=line.amount,
            )
            for line in lines
        ],
    )


def load_dashboard_input(conn: Connection) -> DashboardInput:
    snapshot_rows = conn.execute(
        select(snapshots.c.id, snapshots.c.date, snapshots.c.note).order_by(
            snapshots.c.date, snapshots.c.id
        )
    ).mappings().all()
    all_snapshots = [
        Snapshot(id=row["id"], date=row["date"], note=row["note"]) for row in snapshot_rows
    ]
    lines = fetch_snapshot_lines(conn)
    latest_lines = lines.get(all_snapshots[-1].id, []) if all_snapshots else []
    return DashboardInput(
        latest_lines=latest_lines,
        snapshots=all_snapshots,
        snapshot_lines=lines,
        income_entries=fetch_entries(conn, EntryKind.income),
        expense_entries=fetch_entries(conn, EntryKind.expense),
        expense_categories=fetch_categories(conn),
    )


def load_preferences(conn: Connection) -> PreferencesResponse:
    stored = {
        row["key"]: row["value"]
        for row in conn.execute(select(preferences)).mappings().all()
    }
    return PreferencesResponse(
        cashflow_window=clamp_window_size(
            _int_preference(stored.get(PREFERENCE_CASHFLOW_WINDOW), settings.cashflow_window)
        ),
        upcoming_limit=clamp_upcoming_limit(
            _int_preference(stored.get(PREFERENCE_UPCOMING_LIMIT), settings.upcoming_limit)
        ),
    )


def save_preference(conn: Connection, key: str, value: int) -> None:
    result = conn.execute(
        update(preferences).where(preferences.c.key == key).values(value=str(value))
    )
    if result.rowcount == 0:
        conn.execute(insert(preferences).values(key=key, value=str(value)))


def _int_preference(value: str | None, fallback: int) -> int:
    if value is None:
        return fallback
    try:
        return int(value)
    except ValueError:
        return fallback


def ensure_wallet_exists(conn: Connection, wallet_id: int | None) -> None:
    if wallet_id is None:
        return
    exists = conn.execute(select(wallets.c.id).where(wallets.c.id == wallet_id)).first()
    if not exists:
        raise HTTPException(status_code=404, detail="Wallet not found.")


def ensure_category_exists(conn: Connection, category_id: int | None) -> None:
    if category_id is None:
        return
    exists = conn.execute(
        select(expense_categories.c.id).where(expense_categories.c.id == category_id)
    ).first()
    if not exists:
        raise HTTPException(status_code=404, detail="Category not found.")


def ensure_snapshot_wallets(
    conn: Connection, wallet_ids: list[int], already_listed: set[int] | None = None
) -> None:
    # Inactive wallets keep their historical lines but cannot be added to new ones.
    rows = conn.execute(
        select(wallets.c.id, wallets.c.active).where(wallets.c.id.in_(wallet_ids))
    ).mappings().all()
    active_by_id = {row["id"]: row["active"] for row in rows}
    for wallet_id in wallet_ids:
        if wallet_id not in active_by_id:
            raise HTTPException(status_code=404, detail="Wallet not found.")
        if not active_by_id[wallet_id] and wallet_id not in (already_listed or set()):
            raise HTTPException(status_code=400, detail="Wallet is inactive.")


def delete_snapshot_rows(conn: Connection, snapshot_id: int) -> int:
    conn.execute(snapshot_lines.delete().where(snapshot_lines.c.snapshot_id == snapshot_id))
    return conn.execute(snapshots.delete().where(snapshots.c.id == snapshot_id)).rowcount


def replace_snapshot_on_date(
    conn: Connection, snapshot_date: date, keep_id: int | None = None
) -> None:
    query = select(snapshots.c.id).where(snapshots.c.date == snapshot_date)
    if keep_id is not None:
        query = query.where(snapshots.c.id != keep_id)
    for existing_id in conn.execute(query).scalars().all():
        delete_snapshot_rows(conn, existing_id)
        logger.info("Replaced snapshot %s dated %s", existing_id, snapshot_date)


def insert_snapshot_lines(
    conn: Connection, snapshot_id: int, lines: list[SnapshotLinePayload]
) -> None:
    conn.execute(
        insert(snapshot_lines),
        [
            {"snapshot_id": snapshot_id, "wallet_id": line.wallet_id, "amount": line.amount}
            for line in lines
        ],
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/wallets", response_model=list[WalletResponse])
def list_wallets() -> list[WalletResponse]:
    with engine.begin() as conn:
        rows = conn.execute(select(wallets).order_by(wallets.c.id)).mappings().all()
    return [WalletResponse(**row) for row in rows]


@app.post("/wallets", response_model=WalletResponse)
def create_wallet(payload: WalletPayload) -> WalletResponse:
    try:
        payload = WalletPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    with engine.begin() as conn:
        row = conn.execute(
            insert(wallets).values(**payload.model_dump()).returning(*wallets.c)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=500, detail="Failed to create wallet.")
    return WalletResponse(**row)


@app.put("/wallets/{wallet_id}", response_model=WalletResponse)
def update_wallet(wallet_id: int, payload: WalletPayload) -> WalletResponse:
    try:
        payload = WalletPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    with engine.begin() as conn:
        row = conn.execute(
            update(wallets)
            .where(wallets.c.id == wallet_id)
            .values(**payload.model_dump())
            .returning(*wallets.c)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Wallet not found.")
    return WalletResponse(**row)


@app.get("/expense-categories", response_model=list[CategoryResponse])
def list_expense_categories() -> list[CategoryResponse]:
    with engine.begin() as conn:
        categories = fetch_categories(conn)
    return [
        CategoryResponse(
            id=category.id,
            name=category.name,
            color=category.color,
            active=category.active,
        )
        for category in categories
    ]


@app.post("/expense-categories", response_model=CategoryResponse)
def create_expense_category(payload: CategoryPayload) -> CategoryResponse:
    try:
        payload = CategoryPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    with engine.begin() as conn:
        duplicate = conn.execute(
            select(expense_categories.c.id).where(expense_categories.c.name == payload.name)
        ).first()
        if duplicate:
            raise HTTPException(status_code=409, detail="Category already exists.")
        row = conn.execute(
            insert(expense_categories)
            .values(**payload.model_dump())
            .returning(*expense_categories.c)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=500, detail="Failed to create category.")
    return CategoryResponse(**row)


@app.put("/expense-categories/{category_id}", response_model=CategoryResponse)
def update_expense_category(category_id: int, payload: CategoryPayload) -> CategoryResponse:
    try:
        payload = CategoryPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    with engine.begin() as conn:
        row = conn.execute(
            update(expense_categories)
            .where(expense_categories.c.id == category_id)
            .values(**payload.model_dump())
            .returning(*expense_categories.c)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Category not found.")
    return CategoryResponse(**row)


@app.delete("/expense-categories/{category_id}")
def delete_expense_category(category_id: int) -> dict:
    with engine.begin() as conn:
        ensure_category_exists(conn, category_id)
        # Entries keep their history and fall into the uncategorized bucket.
        conn.execute(
            update(expense_entries)
            .where(expense_entries.c.expense_category_id == category_id)
            .values(expense_category_id=None)
        )
        conn.execute(expense_categories.delete().where(expense_categories.c.id == category_id))
    return {"status": "deleted"}


@app.get("/entries/{kind}", response_model=list[EntryResponse])
def list_entries(kind: str) -> list[EntryResponse]:
    entry_kind = resolve_entry_kind(kind)
    table = entries_table(entry_kind)
    with engine.begin() as conn:
        rows = conn.execute(
            select(table).order_by(table.c.start_date.desc(), table.c.id.desc())
        ).mappings().all()
    return [entry_response(row, entry_kind) for row in rows]


@app.post("/entries/{kind}", response_model=EntryResponse)
def create_entry(kind: str, payload: EntryPayload) -> EntryResponse:
    entry_kind = resolve_entry_kind(kind)
    try:
        payload = EntryPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    table = entries_table(entry_kind)
    with engine.begin() as conn:
        ensure_wallet_exists(conn, payload.wallet_id)
        values = payload.model_dump()
        if entry_kind == EntryKind.expense:
            ensure_category_exists(conn, payload.expense_category_id)
        else:
            values.pop("expense_category_id")
        row = conn.execute(insert(table).values(**values).returning(*table.c)).mappings().first()
    if not row:
        raise HTTPException(status_code=500, detail="Failed to create entry.")
    return entry_response(row, entry_kind)


@app.put("/entries/{kind}/{entry_id}", response_model=EntryResponse)
def update_entry(kind: str, entry_id: int, payload: EntryPayload) -> EntryResponse:
    entry_kind = resolve_entry_kind(kind)
    try:
        payload = EntryPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    table = entries_table(entry_kind)
    with engine.begin() as conn:
        ensure_wallet_exists(conn, payload.wallet_id)
        values = payload.model_dump()
        if entry_kind == EntryKind.expense:
            ensure_category_exists(conn, payload.expense_category_id)
        else:
            values.pop("expense_category_id")
        row = conn.execute(
            update(table).where(table.c.id == entry_id).values(**values).returning(*table.c)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Entry not found.")
    return entry_response(row, entry_kind)


@app.delete("/entries/{kind}/{entry_id}")
def delete_entry(kind: str, entry_id: int) -> dict:
    table = entries_table(resolve_entry_kind(kind))
    with engine.begin() as conn:
        result = conn.execute(table.delete().where(table.c.id == entry_id))
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Entry not found.")
    return {"status": "deleted"}


@app.get("/snapshots", response_model=list[SnapshotSummaryResponse])
def list_snapshots() -> list[SnapshotSummaryResponse]:
    with engine.begin() as conn:
        rows = conn.execute(
            select(snapshots.c.id, snapshots.c.date, snapshots.c.note).order_by(
                snapshots.c.date.desc(), snapshots.c.id.desc()
            )
        ).mappings().all()
    return [SnapshotSummaryResponse(**row) for row in rows]


@app.post("/snapshots", response_model=SnapshotResponse)
def create_snapshot(payload: SnapshotPayload) -> SnapshotResponse:
    try:
        payload = SnapshotPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    with engine.begin() as conn:
        ensure_snapshot_wallets(conn, [line.wallet_id for line in payload.lines])
        replace_snapshot_on_date(conn, payload.date)
        row = conn.execute(
            insert(snapshots)
            .values(date=payload.date, note=payload.note)
            .returning(snapshots.c.id, snapshots.c.date, snapshots.c.note)
        ).mappings().first()
        if not row:
            raise HTTPException(status_code=500, detail="Failed to create snapshot.")
        insert_snapshot_lines(conn, row["id"], payload.lines)
        lines = fetch_snapshot_lines(conn, row["id"]).get(row["id"], [])
    logger.info("Created snapshot %s for %s with %d lines", row["id"], row["date"], len(lines))
    return snapshot_response(row, lines)


@app.get("/snapshots/{snapshot_id}", response_model=SnapshotResponse)
def get_snapshot(snapshot_id: int) -> SnapshotResponse:
    with engine.begin() as conn:
        row = conn.execute(
            select(snapshots.c.id, snapshots.c.date, snapshots.c.note).where(
                snapshots.c.id == snapshot_id
            )
        ).mappings().first()
        if not row:
            raise HTTPException(status_code=404, detail="Snapshot not found.")
        lines = fetch_snapshot_lines(conn, snapshot_id).get(snapshot_id, [])
    return snapshot_response(row, lines)


@app.put("/snapshots/{snapshot_id}", response_model=SnapshotResponse)
def update_snapshot(snapshot_id: int, payload: SnapshotPayload) -> SnapshotResponse:
    try:
        payload = SnapshotPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    with engine.begin() as conn:
        row = conn.execute(
            update(snapshots)
            .where(snapshots.c.id == snapshot_id)
            .values(date=payload.date, note=payload.note)
            .returning(snapshots.c.id, snapshots.c.date, snapshots.c.note)
        ).mappings().first()
        if not row:
            raise HTTPException(status_code=404, detail="Snapshot not found.")
        listed = set(
            conn.execute(
                select(snapshot_lines.c.wallet_id).where(
                    snapshot_lines.c.snapshot_id == snapshot_id
                )
            ).scalars().all()
        )
        ensure_snapshot_wallets(conn, [line.wallet_id for line in payload.lines], listed)
        replace_snapshot_on_date(conn, payload.date, keep_id=snapshot_id)
        conn.execute(snapshot_lines.delete().where(snapshot_lines.c.snapshot_id == snapshot_id))
        insert_snapshot_lines(conn, snapshot_id, payload.lines)
        lines = fetch_snapshot_lines(conn, snapshot_id).get(snapshot_id, [])
    logger.info("Updated snapshot %s for %s with %d lines", snapshot_id, row["date"], len(lines))
    return snapshot_response(row, lines)


@app.delete("/snapshots/{snapshot_id}")
def delete_snapshot(snapshot_id: int) -> dict:
    with engine.begin() as conn:
        if delete_snapshot_rows(conn, snapshot_id) == 0:
            raise HTTPException(status_code=404, detail="Snapshot not found.")
    return {"status": "deleted"}


@app.get("/preferences", response_model=PreferencesResponse)
def get_preferences() -> PreferencesResponse:
    with engine.begin() as conn:
        return load_preferences(conn)


@app.put("/preferences", response_model=PreferencesResponse)
def update_preferences(payload: PreferencesPayload) -> PreferencesResponse:
    with engine.begin() as conn:
        if payload.cashflow_window is not None:
            save_preference(
                conn, PREFERENCE_CASHFLOW_WINDOW, clamp_window_size(payload.cashflow_window)
            )
        if payload.upcoming_limit is not None:
            save_preference(
                conn, PREFERENCE_UPCOMING_LIMIT, clamp_upcoming_limit(payload.upcoming_limit)
            )
        return load_preferences(conn)


@app.get("/occurrences", response_model=list[OccurrenceResponse])
def list_occurrences(
    start_date: str = Query(...),
    end_date: str = Query(...),
) -> list[OccurrenceResponse]:
    try:
        range_start = parse_iso_date(start_date)
        range_end = parse_iso_date(end_date)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if range_start > range_end:
        raise HTTPException(status_code=400, detail="Start date must be on or before end date.")
    with engine.begin() as conn:
        income = fetch_entries(conn, EntryKind.income)
        expense = fetch_entries(conn, EntryKind.expense)

    occurrences = list_occurrences_in_range(income, range_start, range_end)
    occurrences.extend(list_occurrences_in_range(expense, range_start, range_end))
    occurrences.sort(key=lambda item: (item.date, KIND_ORDER[item.kind], item.entry_id))
    return [
        OccurrenceResponse(
            entry_id=occurrence.entry_id,
            kind=occurrence.kind.value,
            date=occurrence.date,
            amount=occurrence.amount,
            name=occurrence.name,
        )
        for occurrence in occurrences
    ]


@app.get("/dashboard", response_model=DashboardData)
def dashboard(today: str | None = Query(None)) -> DashboardData:
    reference_date = None
    if today:
        try:
            reference_date = parse_iso_date(today)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    with engine.begin() as conn:
        data = load_dashboard_input(conn)
        prefs = load_preferences(conn)
    return build_dashboard_data(
        data,
        today=reference_date,
        window_size=prefs.cashflow_window,
        upcoming_limit=prefs.upcoming_limit,
    )
