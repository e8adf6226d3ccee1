"""Request and response models for API endpoints.

JSON keys are camelCase on the wire. Request bodies also accept the
snake_case field names.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing to camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status: 'healthy' or 'unhealthy'")
    version: str = Field(description="API version")
    storage_available: bool = Field(description="Whether storage paths are accessible")
    metadata_available: bool = Field(description="Whether the metadata store answers queries")
    cached_pools: int = Field(default=0, description="Number of target pools currently cached")
    details: dict[str, bool] | None = Field(
        default=None, description="Detailed status of each storage path"
    )


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(description="Error type")
    message: str = Field(description="Error message")
    details: dict | None = Field(default=None, description="Additional error details")


# ============================================
# Connection profile models
# ============================================


class ConnectionCreate(CamelModel):
    """Request to create a connection profile (probed before it is stored)."""

    name: str = Field(min_length=1, description="Display name")
    host: str = Field(min_length=1, description="Target host name or address")
    port: int = Field(default=5432, ge=1, le=65535, description="Target port")
    database: str = Field(min_length=1, description="Database name on the target")
    username: str = Field(min_length=1, description="Login role")
    password: str = Field(description="Login password (stored in clear text)")
    ssl: bool = Field(default=False, description="Require an encrypted session")


class ConnectionTest(ConnectionCreate):
    """Candidate profile for a standalone probe; the display name is optional."""

    name: str = Field(default="", description="Display name (ignored)")


class ConnectionUpdate(CamelModel):
    """Partial update of a connection profile. Only sent fields are applied."""

    name: str | None = Field(default=None, min_length=1, description="Updated display name")
    host: str | None = Field(default=None, min_length=1, description="Updated host")
    port: int | None = Field(default=None, ge=1, le=65535, description="Updated port")
    database: str | None = Field(default=None, min_length=1, description="Updated database name")
    username: str | None = Field(default=None, min_length=1, description="Updated login role")
    password: str | None = Field(default=None, description="Updated password")
    ssl: bool | None = Field(default=None, description="Updated SSL flag")


class ConnectionResponse(CamelModel):
    """Connection profile as returned to clients. The password is never included."""

    id: int = Field(description="Profile identifier")
    name: str = Field(description="Display name")
    host: str = Field(description="Target host")
    port: int = Field(description="Target port")
    database: str = Field(description="Database name on the target")
    username: str = Field(description="Login role")
    ssl: bool = Field(description="Whether an encrypted session is required")
    is_active: bool = Field(default=False, description="Whether a pool is currently cached")
    last_connected: str | None = Field(
        default=None, description="Last pool construction timestamp (ISO)"
    )
    created_at: str | None = Field(default=None, description="Creation timestamp (ISO)")


class ConnectionTestResponse(CamelModel):
    """Outcome of a successful probe."""

    success: bool = Field(description="True when a session could be acquired")


# ============================================
# Saved query models
# ============================================


class SavedQueryCreate(CamelModel):
    """Request to store a named SQL text."""

    name: str = Field(min_length=1, description="Display name")
    query: str = Field(description="SQL text, stored as-is")
    connection_id: int | None = Field(default=None, description="Owning connection profile")


class SavedQueryUpdate(CamelModel):
    """Partial update of a saved query."""

    name: str | None = Field(default=None, min_length=1, description="Updated name")
    query: str | None = Field(default=None, description="Updated SQL text")
    connection_id: int | None = Field(default=None, description="Updated owning profile")


class SavedQueryResponse(CamelModel):
    """Saved query information response."""

    id: int = Field(description="Saved query identifier")
    name: str = Field(description="Display name")
    query: str = Field(description="SQL text")
    connection_id: int | None = Field(default=None, description="Owning connection profile")
    created_at: str | None = Field(default=None, description="Creation timestamp (ISO)")


# ============================================
# Explorer models
# ============================================


class ColumnInfo(CamelModel):
    name: str = Field(description="Column name")
    data_type: str = Field(description="SQL data type as reported by the catalog")
    max_length: int | None = Field(default=None, description="Character maximum length")
    default: str | None = Field(default=None, description="Default expression")
    nullable: bool = Field(description="Whether NULL is allowed")


class ForeignKeyInfo(CamelModel):
    column_name: str = Field(description="Referencing column")
    foreign_table_name: str = Field(description="Referenced table")
    foreign_column_name: str = Field(description="Referenced column")


class IndexInfo(CamelModel):
    name: str = Field(description="Index name")
    definition: str = Field(description="CREATE INDEX statement text")


class TableSchemaResponse(CamelModel):
    """Point-in-time structure of one target table."""

    name: str = Field(description="Table name")
    schema_name: str = Field(alias="schema", description="Schema the table lives in")
    columns: list[ColumnInfo] = Field(default_factory=list, description="Columns in ordinal order")
    primary_keys: list[str] = Field(default_factory=list, description="Primary key columns")
    foreign_keys: list[ForeignKeyInfo] = Field(
        default_factory=list, description="Foreign key relationships"
    )
    indexes: list[IndexInfo] = Field(default_factory=list, description="Index definitions")
    record_count: int = Field(default=0, description="Row count at introspection time")


class DatabaseListResponse(CamelModel):
    databases: list[str] = Field(description="Non-template database names")


class TableListResponse(CamelModel):
    schema_name: str = Field(alias="schema", description="Schema that was listed")
    tables: list[str] = Field(description="Table names ordered by name")


class QueryRequest(CamelModel):
    """Ad-hoc SQL to run against a target."""

    query: str = Field(min_length=1, description="Statement text, executed as given")


class FieldInfo(CamelModel):
    name: str = Field(description="Result column name")
    data_type_id: int = Field(alias="dataTypeID", description="Postgres type OID")
    data_type: str = Field(description="Postgres type name")


class QueryResultResponse(CamelModel):
    """Uniform result of an executed statement."""

    rows: list[dict[str, Any]] = Field(default_factory=list, description="Returned rows")
    row_count: int | None = Field(
        default=None, description="Rows returned or affected (None for utility commands)"
    )
    fields: list[FieldInfo] = Field(default_factory=list, description="Result columns")


class TableDataResponse(CamelModel):
    """One page of table rows."""

    rows: list[dict[str, Any]] = Field(default_factory=list, description="Rows of this page")
    total: int = Field(description="Total rows in the table")
