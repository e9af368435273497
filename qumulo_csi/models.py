"""
Pydantic models for controller requests and responses.

Field names follow the CSI controller service messages.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AccessMode(str, Enum):
    """CSI volume access modes."""

    UNKNOWN = "UNKNOWN"
    SINGLE_NODE_WRITER = "SINGLE_NODE_WRITER"
    SINGLE_NODE_READER_ONLY = "SINGLE_NODE_READER_ONLY"
    MULTI_NODE_READER_ONLY = "MULTI_NODE_READER_ONLY"
    MULTI_NODE_SINGLE_WRITER = "MULTI_NODE_SINGLE_WRITER"
    MULTI_NODE_MULTI_WRITER = "MULTI_NODE_MULTI_WRITER"
    SINGLE_NODE_SINGLE_WRITER = "SINGLE_NODE_SINGLE_WRITER"
    SINGLE_NODE_MULTI_WRITER = "SINGLE_NODE_MULTI_WRITER"


class AccessType(str, Enum):
    """How a volume is consumed on the node."""

    MOUNT = "mount"
    BLOCK = "block"


class ControllerCapability(str, Enum):
    """Controller service RPC capabilities."""

    CREATE_DELETE_VOLUME = "CREATE_DELETE_VOLUME"
    SINGLE_NODE_MULTI_WRITER = "SINGLE_NODE_MULTI_WRITER"
    EXPAND_VOLUME = "EXPAND_VOLUME"


class VolumeCapability(BaseModel):
    """Requested capability of a volume."""

    access_mode: Optional[AccessMode] = None
    access_type: Optional[AccessType] = None
    fs_type: str = ""
    mount_flags: List[str] = Field(default_factory=list)


class CapacityRange(BaseModel):
    """Requested size; zero means unset."""

    required_bytes: int = 0
    limit_bytes: int = 0


class Volume(BaseModel):
    """Volume returned by CreateVolume."""

    volume_id: str
    capacity_bytes: int = 0
    volume_context: Dict[str, str] = Field(default_factory=dict)


# Requests


class CreateVolumeRequest(BaseModel):
    name: str = ""
    capacity_range: Optional[CapacityRange] = None
    volume_capabilities: List[VolumeCapability] = Field(default_factory=list)
    parameters: Dict[str, str] = Field(default_factory=dict)
    secrets: Dict[str, str] = Field(default_factory=dict, repr=False)
    volume_content_source: Optional[Dict[str, Any]] = None


class DeleteVolumeRequest(BaseModel):
    volume_id: str = ""
    secrets: Dict[str, str] = Field(default_factory=dict, repr=False)


class ControllerExpandVolumeRequest(BaseModel):
    volume_id: str = ""
    capacity_range: Optional[CapacityRange] = None
    secrets: Dict[str, str] = Field(default_factory=dict, repr=False)
    volume_capability: Optional[VolumeCapability] = None


class ValidateVolumeCapabilitiesRequest(BaseModel):
    volume_id: str = ""
    volume_context: Dict[str, str] = Field(default_factory=dict)
    volume_capabilities: Optional[List[VolumeCapability]] = None
    parameters: Dict[str, str] = Field(default_factory=dict)
    secrets: Dict[str, str] = Field(default_factory=dict, repr=False)


# Responses


class CreateVolumeResponse(BaseModel):
    volume: Volume


class DeleteVolumeResponse(BaseModel):
    pass


class ControllerExpandVolumeResponse(BaseModel):
    capacity_bytes: int
    node_expansion_required: bool = False


class ValidateVolumeCapabilitiesConfirmed(BaseModel):
    volume_context: Dict[str, str] = Field(default_factory=dict)
    volume_capabilities: List[VolumeCapability] = Field(default_factory=list)
    parameters: Dict[str, str] = Field(default_factory=dict)


class ValidateVolumeCapabilitiesResponse(BaseModel):
    confirmed: Optional[ValidateVolumeCapabilitiesConfirmed] = None
    message: str = ""


class ControllerGetCapabilitiesResponse(BaseModel):
    capabilities: List[ControllerCapability] = Field(default_factory=list)
