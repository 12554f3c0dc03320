"""Closed enumerations for engine wire type codes.

Each driver reports column types as numeric codes or tags specific to its
protocol. Every enumeration here has an ``UNKNOWN`` member that any code
without a mapping resolves to, so a gap in a table shows up as ``unknown``
instead of a plausible wrong type.
"""

from enum import Enum, IntEnum
from typing import Any, Dict


class PgOid(IntEnum):
    """PostgreSQL type OIDs as reported in row descriptions."""

    UNKNOWN = -1
    BOOL = 16
    INT8 = 20
    INT2 = 21
    INT4 = 23
    TEXT = 25
    JSON = 114
    FLOAT4 = 700
    FLOAT8 = 701
    BPCHAR = 1042
    VARCHAR = 1043
    DATE = 1082
    TIME = 1083
    TIMESTAMP = 1114
    TIMESTAMPTZ = 1184
    UUID = 2950
    JSONB = 3802

    @classmethod
    def from_code(cls, code: Any) -> "PgOid":
        try:
            return cls(int(code))
        except (TypeError, ValueError):
            return cls.UNKNOWN

    @property
    def type_name(self) -> str:
        return _PG_NAMES[self]


_PG_NAMES: Dict[PgOid, str] = {
    PgOid.UNKNOWN: "unknown",
    PgOid.BOOL: "boolean",
    PgOid.INT8: "bigint",
    PgOid.INT2: "smallint",
    PgOid.INT4: "integer",
    PgOid.TEXT: "text",
    PgOid.JSON: "json",
    PgOid.FLOAT4: "real",
    PgOid.FLOAT8: "double precision",
    PgOid.BPCHAR: "char",
    PgOid.VARCHAR: "varchar",
    PgOid.DATE: "date",
    PgOid.TIME: "time",
    PgOid.TIMESTAMP: "timestamp",
    PgOid.TIMESTAMPTZ: "timestamptz",
    PgOid.UUID: "uuid",
    PgOid.JSONB: "jsonb",
}


class MySqlFieldType(IntEnum):
    """MySQL protocol column type ids."""

    UNKNOWN = -1
    DECIMAL = 0
    TINY = 1
    SHORT = 2
    LONG = 3
    FLOAT = 4
    DOUBLE = 5
    TIMESTAMP = 7
    LONGLONG = 8
    INT24 = 9
    DATE = 10
    TIME = 11
    DATETIME = 12
    YEAR = 13
    VARCHAR = 15
    JSON = 245
    NEWDECIMAL = 246
    BLOB = 252
    VAR_STRING = 253
    STRING = 254

    @classmethod
    def from_code(cls, code: Any) -> "MySqlFieldType":
        try:
            return cls(int(code))
        except (TypeError, ValueError):
            return cls.UNKNOWN

    @property
    def type_name(self) -> str:
        return _MYSQL_NAMES[self]


_MYSQL_NAMES: Dict[MySqlFieldType, str] = {
    MySqlFieldType.UNKNOWN: "unknown",
    MySqlFieldType.DECIMAL: "decimal",
    MySqlFieldType.TINY: "tinyint",
    MySqlFieldType.SHORT: "smallint",
    MySqlFieldType.LONG: "int",
    MySqlFieldType.FLOAT: "float",
    MySqlFieldType.DOUBLE: "double",
    MySqlFieldType.TIMESTAMP: "timestamp",
    MySqlFieldType.LONGLONG: "bigint",
    MySqlFieldType.INT24: "mediumint",
    MySqlFieldType.DATE: "date",
    MySqlFieldType.TIME: "time",
    MySqlFieldType.DATETIME: "datetime",
    MySqlFieldType.YEAR: "year",
    MySqlFieldType.VARCHAR: "varchar",
    MySqlFieldType.JSON: "json",
    MySqlFieldType.NEWDECIMAL: "decimal",
    MySqlFieldType.BLOB: "blob",
    MySqlFieldType.VAR_STRING: "varchar",
    MySqlFieldType.STRING: "char",
}


class OracleDbType(IntEnum):
    """Oracle internal data type numbers."""

    UNKNOWN = -1
    VARCHAR2 = 1
    NUMBER = 2
    DATE = 12
    RAW = 23
    CHAR = 96
    BINARY_FLOAT = 100
    BINARY_DOUBLE = 101
    ROWID = 104
    CLOB = 112
    BLOB = 113
    BFILE = 114
    TIMESTAMP = 180
    TIMESTAMP_TZ = 181
    INTERVAL_YM = 182
    INTERVAL_DS = 183
    TIMESTAMP_LTZ_LEGACY = 187
    TIMESTAMP_LTZ = 231
    OBJECT = 2001
    NESTED_TABLE = 2002
    VARRAY = 2003
    XMLTYPE = 2007
    NCHAR = 2023
    NVARCHAR2 = 2024
    NCLOB = 2025

    @classmethod
    def from_code(cls, code: Any) -> "OracleDbType":
        try:
            return cls(int(code))
        except (TypeError, ValueError):
            return cls.UNKNOWN

    @classmethod
    def from_driver(cls, db_type: Any) -> "OracleDbType":
        """Resolve a python-oracledb ``DbType`` (matched by its name) or a raw code."""
        if isinstance(db_type, int):
            return cls.from_code(db_type)
        return _ORACLE_DRIVER_NAMES.get(getattr(db_type, "name", None), cls.UNKNOWN)

    @property
    def type_name(self) -> str:
        return _ORACLE_NAMES[self]


_ORACLE_NAMES: Dict[OracleDbType, str] = {
    OracleDbType.UNKNOWN: "unknown",
    OracleDbType.VARCHAR2: "VARCHAR2",
    OracleDbType.NUMBER: "NUMBER",
    OracleDbType.DATE: "DATE",
    OracleDbType.RAW: "RAW",
    OracleDbType.CHAR: "CHAR",
    OracleDbType.BINARY_FLOAT: "BINARY_FLOAT",
    OracleDbType.BINARY_DOUBLE: "BINARY_DOUBLE",
    OracleDbType.ROWID: "ROWID",
    OracleDbType.CLOB: "CLOB",
    OracleDbType.BLOB: "BLOB",
    OracleDbType.BFILE: "BFILE",
    OracleDbType.TIMESTAMP: "TIMESTAMP",
    OracleDbType.TIMESTAMP_TZ: "TIMESTAMP WITH TIME ZONE",
    OracleDbType.INTERVAL_YM: "INTERVAL YEAR TO MONTH",
    OracleDbType.INTERVAL_DS: "INTERVAL DAY TO SECOND",
    OracleDbType.TIMESTAMP_LTZ_LEGACY: "TIMESTAMP WITH LOCAL TZ",
    OracleDbType.TIMESTAMP_LTZ: "TIMESTAMP WITH LOCAL TIME ZONE",
    OracleDbType.OBJECT: "OBJECT",
    OracleDbType.NESTED_TABLE: "NESTED TABLE",
    OracleDbType.VARRAY: "VARRAY",
    OracleDbType.XMLTYPE: "XMLTYPE",
    OracleDbType.NCHAR: "NCHAR",
    OracleDbType.NVARCHAR2: "NVARCHAR2",
    OracleDbType.NCLOB: "NCLOB",
}

_ORACLE_DRIVER_NAMES: Dict[Any, OracleDbType] = {
    "DB_TYPE_VARCHAR": OracleDbType.VARCHAR2,
    "DB_TYPE_NUMBER": OracleDbType.NUMBER,
    "DB_TYPE_DATE": OracleDbType.DATE,
    "DB_TYPE_RAW": OracleDbType.RAW,
    "DB_TYPE_CHAR": OracleDbType.CHAR,
    "DB_TYPE_BINARY_FLOAT": OracleDbType.BINARY_FLOAT,
    "DB_TYPE_BINARY_DOUBLE": OracleDbType.BINARY_DOUBLE,
    "DB_TYPE_ROWID": OracleDbType.ROWID,
    "DB_TYPE_CLOB": OracleDbType.CLOB,
    "DB_TYPE_BLOB": OracleDbType.BLOB,
    "DB_TYPE_BFILE": OracleDbType.BFILE,
    "DB_TYPE_TIMESTAMP": OracleDbType.TIMESTAMP,
    "DB_TYPE_TIMESTAMP_TZ": OracleDbType.TIMESTAMP_TZ,
    "DB_TYPE_INTERVAL_YM": OracleDbType.INTERVAL_YM,
    "DB_TYPE_INTERVAL_DS": OracleDbType.INTERVAL_DS,
    "DB_TYPE_TIMESTAMP_LTZ": OracleDbType.TIMESTAMP_LTZ,
    "DB_TYPE_OBJECT": OracleDbType.OBJECT,
    "DB_TYPE_XMLTYPE": OracleDbType.XMLTYPE,
    "DB_TYPE_NCHAR": OracleDbType.NCHAR,
    "DB_TYPE_NVARCHAR": OracleDbType.NVARCHAR2,
    "DB_TYPE_NCLOB": OracleDbType.NCLOB,
}


class CassandraTypeCode(IntEnum):
    """CQL native protocol option ids."""

    UNKNOWN = -1
    CUSTOM = 0x00
    ASCII = 0x01
    BIGINT = 0x02
    BLOB = 0x03
    BOOLEAN = 0x04
    COUNTER = 0x05
    DECIMAL = 0x06
    DOUBLE = 0x07
    FLOAT = 0x08
    INT = 0x09
    TEXT = 0x0A
    TIMESTAMP = 0x0B
    UUID = 0x0C
    VARCHAR = 0x0D
    VARINT = 0x0E
    TIMEUUID = 0x0F
    INET = 0x10
    DATE = 0x11
    TIME = 0x12
    SMALLINT = 0x13
    TINYINT = 0x14
    LIST = 0x20
    MAP = 0x21
    SET = 0x22
    UDT = 0x30
    TUPLE = 0x31

    @classmethod
    def from_code(cls, code: Any) -> "CassandraTypeCode":
        try:
            return cls(int(code))
        except (TypeError, ValueError):
            return cls.UNKNOWN

    @classmethod
    def from_name(cls, name: Any) -> "CassandraTypeCode":
        """Resolve a CQL type name such as ``"int"`` or ``"list<text>"``."""
        if not isinstance(name, str) or not name:
            return cls.UNKNOWN
        base = name.split("<", 1)[0].strip().lower()
        if base == "frozen":
            inner = name[name.index("<") + 1:name.rindex(">")] if ">" in name else ""
            return cls.from_name(inner)
        return _CASSANDRA_BY_NAME.get(base, cls.UNKNOWN)

    @property
    def type_name(self) -> str:
        return self.name.lower()


_CASSANDRA_BY_NAME: Dict[str, CassandraTypeCode] = {
    member.name.lower(): member
    for member in CassandraTypeCode
    if member is not CassandraTypeCode.UNKNOWN
}


class DynamoAttributeType(str, Enum):
    """DynamoDB attribute value tags."""

    UNKNOWN = "UNKNOWN"
    S = "S"
    N = "N"
    B = "B"
    SS = "SS"
    NS = "NS"
    BS = "BS"
    M = "M"
    L = "L"
    NULL = "NULL"
    BOOL = "BOOL"

    @classmethod
    def from_tag(cls, tag: Any) -> "DynamoAttributeType":
        try:
            return cls(tag)
        except (TypeError, ValueError):
            return cls.UNKNOWN

    @property
    def type_name(self) -> str:
        return _DYNAMO_NAMES[self]


_DYNAMO_NAMES: Dict[DynamoAttributeType, str] = {
    DynamoAttributeType.UNKNOWN: "Unknown",
    DynamoAttributeType.S: "String",
    DynamoAttributeType.N: "Number",
    DynamoAttributeType.B: "Binary",
    DynamoAttributeType.SS: "StringSet",
    DynamoAttributeType.NS: "NumberSet",
    DynamoAttributeType.BS: "BinarySet",
    DynamoAttributeType.M: "Map",
    DynamoAttributeType.L: "List",
    DynamoAttributeType.NULL: "Null",
    DynamoAttributeType.BOOL: "Boolean",
}
