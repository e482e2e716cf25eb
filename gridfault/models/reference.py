"""
Grid Fault Engine
Reference data models: regions and districts.

Architecture:
    Region ──1:N──▶ District   (district.region_id back-reference, not ownership)

The engine never mutates these; they are read into ``ReferenceIndex``
snapshots for scope matching.
"""

from gridfault.core.domain import District as DistrictValue
from gridfault.core.domain import Region as RegionValue
from gridfault.models import db


class Region(db.Model):
    __tablename__ = "regions"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)

    def to_value(self) -> RegionValue:
        return RegionValue(id=self.id, name=self.name)

    def to_dict(self):
        return {"id": self.id, "name": self.name}


class District(db.Model):
    __tablename__ = "districts"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    region_id = db.Column(
        db.String(64), db.ForeignKey("regions.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )

    __table_args__ = (
        db.UniqueConstraint("region_id", "name", name="uq_district_region_name"),
    )

    def to_value(self) -> DistrictValue:
        return DistrictValue(id=self.id, name=self.name, region_id=self.region_id)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "region_id": self.region_id}
