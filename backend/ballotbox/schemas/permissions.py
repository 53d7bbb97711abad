"""
Capability set resolved for one (caller, poll) pair.
"""
from pydantic import BaseModel


class Capabilities(BaseModel):
    can_view: bool = False
    can_edit: bool = False
    can_manage: bool = False
    can_audit: bool = False
    can_view_results: bool = False
    can_view_participants: bool = False
    can_manage_participants: bool = False
    can_view_settings: bool = False
    can_edit_settings: bool = False
    can_delete: bool = False

    class Config:
        frozen = True

    def __or__(self, other: "Capabilities") -> "Capabilities":
        return Capabilities(**{
            name: getattr(self, name) or getattr(other, name)
            for name in Capabilities.model_fields
        })

    @classmethod
    def full(cls, **overrides: bool) -> "Capabilities":
        values = {name: True for name in cls.model_fields}
        values.update(overrides)
        return cls(**values)
