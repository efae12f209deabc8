"""Static registry of the farmer-registry tables mirrored into the hub.

Each entry describes the target DDL as a SQLAlchemy Core ``Table`` together
with the transfer rules the engine applies to it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import (BigInteger, Column, Date, DateTime, Enum, Float, Index,
                        Integer, LargeBinary, MetaData, Numeric, SmallInteger,
                        String, Table, Text, UniqueConstraint)

ENTITY_KEY = "rsbsa_no"
PARCEL_KEY = "parcel_id"
CHANGELOG_TABLE = "etl_logger_profiling"
OWNERSHIP_TABLE = "farmparcelownership"
PARCEL_TABLE = "farmparcel"


class Cardinality(enum.Enum):
    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"


class Resolution(enum.Enum):
    DIRECT = "direct"
    VIA_OWNERSHIP = "via_ownership"


@dataclass(frozen=True)
class TableSpec:
    """Target table + metadata used during synchronization."""

    name: str
    table: Table
    cardinality: Cardinality
    uppercase_fields: Tuple[str, ...] = ()
    key_column: str = ENTITY_KEY
    resolution: Resolution = Resolution.DIRECT
    cascades: Tuple[str, ...] = ()
    description: Optional[str] = None

    @property
    def is_one_to_one(self) -> bool:
        return self.cardinality is Cardinality.ONE_TO_ONE

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(column.name for column in self.table.columns)

    @property
    def writes(self) -> Tuple[str, ...]:
        """Every target table touched when this table-group is transferred."""
        return (self.name,) + self.cascades


metadata = MetaData()


def _flag(*values: str) -> Enum:
    return Enum(*values, native_enum=False, length=max(len(v) for v in values))


def _encoder_columns(fullname_length: int = 255) -> List[Column]:
    return [
        Column("encoder_agency", String(50)),
        Column("encoder_id", String(50)),
        Column("encoder_fullname", String(fullname_length)),
    ]


def _address_columns() -> List[Column]:
    return [
        Column("reg1", SmallInteger),
        Column("prv1", SmallInteger),
        Column("mun1", SmallInteger),
        Column("geo_code", String(9)),
        Column("brgy", Integer),
        Column("mun", Integer),
        Column("prv", Integer),
        Column("reg", Integer),
    ]


def _one_to_one(name: str, pk: str, *columns: Column) -> Table:
    return Table(
        name,
        metadata,
        Column(pk, Integer, primary_key=True, autoincrement=True),
        Column(ENTITY_KEY, String(50), nullable=False),
        *columns,
        UniqueConstraint(ENTITY_KEY, name=f"uq_{name}_{ENTITY_KEY}"),
    )


def _one_to_many(name: str, pk: str, *columns: Column, parcel_index: bool = False) -> Table:
    extra = [Index(f"idx_{name}_{PARCEL_KEY}", PARCEL_KEY)] if parcel_index else []
    return Table(
        name,
        metadata,
        Column(pk, Integer, primary_key=True, autoincrement=True),
        Column(ENTITY_KEY, String(50), nullable=False),
        *columns,
        Index(f"idx_{name}_{ENTITY_KEY}", ENTITY_KEY),
        *extra,
    )


changelog_table = Table(
    CHANGELOG_TABLE,
    MetaData(),
    Column("log_id", BigInteger().with_variant(Integer, "sqlite"), primary_key=True),
    Column(ENTITY_KEY, String(50)),
    Column("table", String(100)),
)


farmers_kyc1 = _one_to_one(
    "farmers_kyc1",
    "kyc1_id",
    Column("farmerID", String(50)),
    Column("philsys_trn", String(50)),
    Column("philsys_pcn", String(50)),
    Column("sequence", Integer),
    Column("source_rsbsa_no", String(50)),
    Column("data_source", _flag("FFRS", "NFFIS", "NCFRSS", "NIA", "FISHR")),
    Column("other_sys_gen_id", String(100)),
    Column("other_sys_id", String(100)),
    Column("enrollment", String(1)),
    Column("file_picture", String(100)),
    Column("control_no", String(50)),
    Column("first_name", String(120)),
    Column("middle_name", String(100)),
    Column("surname", String(100)),
    Column("ext_name", String(50)),
    Column("mother_maiden_name", String(220)),
    Column("spouse_rsbsa_no", String(50)),
    Column("maiden_fname", String(50)),
    Column("maiden_mname", String(50)),
    Column("maiden_lname", String(50)),
    Column("maiden_extname", String(50)),
    Column("sex", SmallInteger),
    Column("birthday", Date),
    Column("birth_place", String(50)),
    Column("birth_prv", String(200)),
    Column("birth_prv_mun", String(100)),
    Column("house_no", String(255)),
    Column("street", String(255)),
    Column("brgy1", SmallInteger),
    *_address_columns(),
    Column("geocode", String(15)),
    Column("ncr_brgy", Integer),
    Column("ncr_mun", Integer),
    Column("ncr_prv", Integer),
    Column("ncr_reg", Integer),
    Column("ncr_house_no", String(255)),
    Column("ncr_street", String(255)),
    Column("c_date", DateTime),
    Column("clone_by_id", String(50)),
    Column("clone_by_fullname", String(120)),
    Column("date_cloned", DateTime),
    Column("v1_v2", SmallInteger),
)

farmers_kyc2 = _one_to_one(
    "farmers_kyc2",
    "kyc2_id",
    Column("contact_num", String(20)),
    Column("contact_num_question", SmallInteger),
    Column("mob_number_fname", String(50)),
    Column("mob_number_mname", String(50)),
    Column("mob_number_lname", String(50)),
    Column("mob_number_extname", String(50)),
    Column("landline_num", String(20)),
    Column("education", SmallInteger),
    Column("pwd", SmallInteger),
    Column("religion", String(50)),
    Column("civil_status", SmallInteger),
    Column("spouse", String(220)),
    Column("spouse_fname", String(50)),
    Column("spouse_mname", String(50)),
    Column("spouse_lname", String(50)),
    Column("spouse_extname", String(50)),
    Column("spouse_rsbsa_no", String(50)),
    Column("beneficiary_4ps", SmallInteger),
    Column("ind_ans", SmallInteger),
    Column("ind_id", String(50)),
    Column("gov_ans", SmallInteger),
    Column("gov_id", String(50)),
    Column("gov_id_num", String(50)),
    Column("hh_head", SmallInteger),
    Column("hh_head_name", String(255)),
    Column("hh_relationship", String(50)),
    Column("hh_no_members", Integer),
    Column("hh_no_male", Integer),
    Column("hh_no_female", Integer),
    Column("fca_ans", SmallInteger),
    Column("fca_id", String(50)),
    Column("emergency_name", String(220)),
    Column("emergency_contact", String(50)),
)

farmers_kyc3 = _one_to_one(
    "farmers_kyc3",
    "kyc3_id",
    Column("no_farm_parcels", Integer),
    Column("arb", SmallInteger),
    Column("gross_income_farming", Numeric(10, 2)),
    Column("gross_income_nonfarming", Numeric(10, 2)),
    Column("vtc_date", Date),
    Column("vtc_bgy_chair", String(255)),
    Column("vtc_agri_office", String(150)),
    Column("vtc_mafc_chair", String(255)),
)

farmers_kyc4 = _one_to_one(
    "farmers_kyc4",
    "kyc4_id",
    Column("encoder_agency", String(50)),
    Column("encoder_id", String(50)),
    Column("encoder_fullname", String(120)),
    Column("encoder_id_updated", String(50)),
    Column("encoder_fullname_updated", String(120)),
    Column("date_created", DateTime),
    Column("date_updated", DateTime),
    Column("deceased", _flag("1", "0")),
    Column("deceased_reason", Text),
    Column("ch_occupation", _flag("active", "inactive")),
    Column("ch_occupation_reason", Text),
    Column("duplicated", _flag("1", "0")),
    Column("duplicated_reason", Text),
    Column("duplicated_rsbsa_no", Text),
    Column("rffa2_cashout", SmallInteger),
    Column("validated", _flag("1", "0", "2")),
    Column("unvalidated_reason", Text),
    Column("validator_by_id", String(100)),
    Column("validator_fullname", String(100)),
    Column("date_validated", DateTime),
    Column("submitted", _flag("1", "0")),
    Column("date_submitted", DateTime),
    Column("submitted_by_id", String(100)),
    Column("submitted_by_fullname", String(100)),
    Column("rfo_validated", _flag("1", "0")),
    Column("rfo_date_validated", DateTime),
    Column("rfo_validated_id", String(100)),
    Column("rfo_validated_fullname", String(100)),
    Column("online_applicant", _flag("1", "0")),
    Column("checked_date", DateTime),
    Column("checked", _flag("1", "0")),
    Column("checked_by_id", String(50)),
    Column("checked_fullname", String(100)),
    Column("complete_cloned_by_fullname", String(120)),
    Column("complete_cloned_by_id", String(50)),
    Column("date_cloned_completed", DateTime),
    Column("rsbsa_liveness_verified", SmallInteger),
    Column("rsbsa_last_liveness_date", DateTime),
    Column("rsbsa_last_user_id_liveness", String(50)),
    Column("rsbsa_last_user_fullname_liveness", String(100)),
    Column("philsys_liveness_verified", SmallInteger),
    Column("philsys_last_liveness_date", DateTime),
    Column("philsys_last_user_id_liveness", String(50)),
    Column("philsys_last_user_fullname_liveness", String(100)),
)

farmers_attachments = _one_to_many(
    "farmers_attachments",
    "fatt_id",
    Column("filename", String(200)),
    Column("validity_file", _flag("1", "0", "2")),
    Column("date_created", DateTime),
    Column("active", _flag("1", "0")),
    *_encoder_columns(),
)

farmers_fca = _one_to_many(
    "farmers_fca",
    "id",
    Column("fca_id", String(50)),
    Column("fca_name", String(255)),
    Column("date_created", DateTime),
    Column("active", _flag("1", "0")),
    *_encoder_columns(),
)

farmers_form_attachments = _one_to_many(
    "farmers_form_attachments",
    "ffatt_id",
    Column("filename", String(200)),
    Column("date_created", DateTime),
    Column("active", _flag("1", "0")),
    *_encoder_columns(),
)

farmers_livelihood = _one_to_many(
    "farmers_livelihood",
    "farmlivelihoodID",
    Column("livelihood", String(100)),
    Column("activity_work", String(150)),
    Column("specify", String(255)),
    Column("active", _flag("1", "0")),
)

farmparcelactivity = _one_to_many(
    "farmparcelactivity",
    "farmlanddetailsID",
    Column(PARCEL_KEY, String(50)),
    Column("crop_id", Integer),
    Column("size", Numeric(10, 4)),
    Column("temp_size", Numeric(10, 4)),
    Column("orig", Numeric(10, 4)),
    Column("no_heads", Integer),
    Column("farm_type", SmallInteger),
    Column("organic", SmallInteger),
    Column("active", _flag("1", "0")),
    *_encoder_columns(),
    Column("date_created", DateTime),
    Column("slip_b_update", SmallInteger),
    Column("from_slip_b_update", SmallInteger),
    Column("intercrop", _flag("1", "2")),
    Column("crop_date_start", SmallInteger),
    Column("crop_date_end", SmallInteger),
    Column("gpx_id", String(50)),
    parcel_index=True,
)

farmparcelattachments = _one_to_many(
    "farmparcelattachments",
    "att_id",
    Column(PARCEL_KEY, String(50)),
    Column("file_name", String(200)),
    Column("active", _flag("1", "0")),
    *_encoder_columns(200),
    Column("date_created", DateTime),
    parcel_index=True,
)

farmparcelownership = _one_to_many(
    OWNERSHIP_TABLE,
    "farmownID",
    Column(PARCEL_KEY, String(50)),
    Column("own_status", String(100)),
    Column("date_created", DateTime),
    Column("active", _flag("1", "0")),
    *_encoder_columns(),
    parcel_index=True,
)

# Parcels carry no rsbsa_no of their own; they are keyed by parcel_id and
# reached through the ownership junction.
farmparcel = Table(
    PARCEL_TABLE,
    metadata,
    Column(PARCEL_KEY, String(50), primary_key=True),
    Column("parcel_no", SmallInteger),
    Column("arb", SmallInteger),
    Column("ancestral", SmallInteger),
    Column("bgy1", SmallInteger),
    *_address_columns(),
    Column("desc_location", String(200)),
    Column("parcel_geo_pol", LargeBinary),
    Column("parcel_geo_point", LargeBinary),
    Column("lat", Float),
    Column("long", Float),
    Column("farm_area", Numeric(10, 4)),
    Column("temp_farm_area", Numeric(10, 4)),
    Column("unit_measure", String(20)),
    Column("own_doc", SmallInteger),
    Column("own_doc_no", String(50)),
    Column("type", SmallInteger),
    Column("owner_firstname", String(200)),
    Column("owner_lastname", String(200)),
    Column("owner_extname", String(200)),
    Column("owner_ans", SmallInteger),
    Column("owner_rsbsa_no", String(50)),
    Column("farmers_rotation_fullname", String(200)),
    Column("farmers_rotation_rsbsa_no", String(200)),
    Column("remarks", Text),
    Column("attachment", String(200)),
    Column("active", _flag("1", "0")),
    Column("date_created", DateTime),
    Column("slip_b_update", SmallInteger),
    Column("from_slip_b_update", SmallInteger),
    Index("idx_farmparcel_owner_rsbsa_no", "owner_rsbsa_no"),
)


PARCEL_FIELDS = (
    "owner_firstname",
    "owner_lastname",
    "owner_extname",
    "farmers_rotation_fullname",
    "desc_location",
    "unit_measure",
    "own_doc_no",
    "attachment",
)

_SPECS: Tuple[TableSpec, ...] = (
    TableSpec(
        name="farmers_kyc1",
        table=farmers_kyc1,
        cardinality=Cardinality.ONE_TO_ONE,
        uppercase_fields=(
            "data_source", "first_name", "middle_name", "surname", "ext_name",
            "mother_maiden_name", "maiden_fname", "maiden_mname", "maiden_lname",
            "maiden_extname", "birth_prv", "birth_prv_mun", "street",
        ),
        description="Personal identity and address",
    ),
    TableSpec(
        name="farmers_kyc2",
        table=farmers_kyc2,
        cardinality=Cardinality.ONE_TO_ONE,
        uppercase_fields=(
            "mob_number_fname", "mob_number_mname", "mob_number_lname",
            "mob_number_extname", "spouse", "hh_head_name", "hh_relationship",
            "emergency_name",
        ),
        description="Contact, household and government IDs",
    ),
    TableSpec(
        name="farmers_kyc3",
        table=farmers_kyc3,
        cardinality=Cardinality.ONE_TO_ONE,
        uppercase_fields=("vtc_bgy_chair", "vtc_agri_office", "vtc_mafc_chair"),
        description="Farm income and verification",
    ),
    TableSpec(
        name="farmers_kyc4",
        table=farmers_kyc4,
        cardinality=Cardinality.ONE_TO_ONE,
        uppercase_fields=("encoder_fullname", "encoder_fullname_updated", "deceased_reason"),
        description="Encoding, validation and liveness audit trail",
    ),
    TableSpec(
        name="farmers_attachments",
        table=farmers_attachments,
        cardinality=Cardinality.ONE_TO_MANY,
        uppercase_fields=("encoder_fullname",),
    ),
    TableSpec(
        name="farmers_fca",
        table=farmers_fca,
        cardinality=Cardinality.ONE_TO_MANY,
        uppercase_fields=("encoder_fullname",),
    ),
    TableSpec(
        name="farmers_form_attachments",
        table=farmers_form_attachments,
        cardinality=Cardinality.ONE_TO_MANY,
        uppercase_fields=("encoder_fullname",),
    ),
    TableSpec(
        name="farmers_livelihood",
        table=farmers_livelihood,
        cardinality=Cardinality.ONE_TO_MANY,
        uppercase_fields=("livelihood", "activity_work", "specify"),
    ),
    TableSpec(
        name="farmparcelactivity",
        table=farmparcelactivity,
        cardinality=Cardinality.ONE_TO_MANY,
        uppercase_fields=PARCEL_FIELDS,
    ),
    TableSpec(
        name="farmparcelattachments",
        table=farmparcelattachments,
        cardinality=Cardinality.ONE_TO_MANY,
        uppercase_fields=PARCEL_FIELDS,
    ),
    TableSpec(
        name=PARCEL_TABLE,
        table=farmparcel,
        cardinality=Cardinality.ONE_TO_MANY,
        uppercase_fields=PARCEL_FIELDS,
        key_column=PARCEL_KEY,
        resolution=Resolution.VIA_OWNERSHIP,
        description="Parcels, replaced per parcel_id",
    ),
    TableSpec(
        name=OWNERSHIP_TABLE,
        table=farmparcelownership,
        cardinality=Cardinality.ONE_TO_MANY,
        uppercase_fields=("encoder_agency", "encoder_fullname"),
        cascades=(PARCEL_TABLE,),
        description="Ownership junction between farmers and parcels",
    ),
)

TABLE_SPECS: Mapping[str, TableSpec] = {spec.name: spec for spec in _SPECS}


def get_table_spec(name: Optional[str]) -> Optional[TableSpec]:
    if not name:
        return None
    return TABLE_SPECS.get(name)


def lanes(names: Iterable[str]) -> List[List[str]]:
    """Partition table names so groups writing a shared target table stay together.

    Lanes keep the input order, both among lanes and within each lane.
    """
    ordered = list(dict.fromkeys(names))
    position = {name: index for index, name in enumerate(ordered)}
    result: List[Tuple[set, List[str]]] = []
    for name in ordered:
        spec = TABLE_SPECS.get(name)
        touched = set(spec.writes if spec else (name,))
        members = [name]
        kept: List[Tuple[set, List[str]]] = []
        for lane_touched, lane_members in result:
            if lane_touched & touched:
                touched |= lane_touched
                members.extend(lane_members)
            else:
                kept.append((lane_touched, lane_members))
        kept.append((touched, members))
        result = kept
    grouped = [sorted(members, key=position.__getitem__) for _, members in result]
    grouped.sort(key=lambda lane: position[lane[0]])
    return grouped
