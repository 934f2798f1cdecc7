# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for coilsim."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict


class CoilsimBaseModel(BaseModel):
    """Base model with shared config for coilsim schemas."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )


class FrozenModel(BaseModel):
    """Base model for records that never change once produced."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )
