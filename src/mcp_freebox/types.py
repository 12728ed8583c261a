"""Typed Freebox API resources.

Each resource exposes ``from_dict`` to build it from an envelope result and
``to_dict`` for JSON output. Request payloads expose ``to_payload`` which
produces the wire representation (base64 paths, no unset fields).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .envelope import decode_path, decode_usb_ports, encode_path

# Port forwarding protocols
IP_PROTO_TCP = "tcp"
IP_PROTO_UDP = "udp"

# Virtual machine disk types
DISK_TYPE_QCOW2 = "qcow2"
DISK_TYPE_RAW = "raw"

# Virtual machine statuses
VM_STATUS_STOPPED = "stopped"
VM_STATUS_RUNNING = "running"
VM_STATUS_STARTING = "starting"
VM_STATUS_STOPPING = "stopping"

# Conflict resolution modes for file moves and copies
FILE_MODE_OVERWRITE = "overwrite"
FILE_MODE_BOTH = "both"
FILE_MODE_SKIP = "skip"
FILE_MODE_RECENT = "recent"

# Hash algorithms supported by the hash task
HASH_TYPES = ("md5", "sha1", "sha256", "sha512")


def _without_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def _encode_optional_path(path: Optional[str]) -> Optional[str]:
    return encode_path(path) if path is not None else None


class FreeboxModel:
    """Mixin giving dataclass resources a JSON friendly ``to_dict``."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        return _without_none(asdict(self))  # type: ignore[call-overload]


# =============================================================================
# System
# =============================================================================


@dataclass
class APIVersion(FreeboxModel):
    """Unauthenticated box description served at /api_version."""

    uid: Optional[str] = None
    device_name: Optional[str] = None
    api_version: Optional[str] = None
    api_base_url: Optional[str] = None
    device_type: Optional[str] = None
    api_domain: Optional[str] = None
    https_available: bool = False
    https_port: Optional[int] = None
    box_model: Optional[str] = None
    box_model_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> APIVersion:
        """Create from API response dict."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


# =============================================================================
# LAN browser
# =============================================================================


@dataclass
class L2Ident(FreeboxModel):
    """Layer 2 identity of a LAN host."""

    id: str
    type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> L2Ident:
        """Create from API response dict."""
        return cls(id=data["id"], type=data.get("type"))


@dataclass
class L3Connectivity(FreeboxModel):
    """A layer 3 address seen for a LAN host."""

    addr: str
    af: Optional[str] = None
    active: bool = False
    reachable: bool = False
    last_activity: Optional[int] = None
    last_time_reachable: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> L3Connectivity:
        """Create from API response dict."""
        return cls(
            addr=data["addr"],
            af=data.get("af"),
            active=data.get("active", False),
            reachable=data.get("reachable", False),
            last_activity=data.get("last_activity"),
            last_time_reachable=data.get("last_time_reachable"),
        )


@dataclass
class HostName(FreeboxModel):
    """A name advertised by a LAN host."""

    name: str
    source: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> HostName:
        """Create from API response dict."""
        return cls(name=data["name"], source=data.get("source"))


@dataclass
class LanInterfaceHost(FreeboxModel):
    """A host seen on a LAN interface."""

    id: str
    primary_name: Optional[str] = None
    host_type: Optional[str] = None
    primary_name_manual: bool = False
    vendor_name: Optional[str] = None
    persistent: bool = False
    reachable: bool = False
    active: bool = False
    last_activity: Optional[int] = None
    first_activity: Optional[int] = None
    last_time_reachable: Optional[int] = None
    interface: Optional[str] = None
    l2ident: Optional[L2Ident] = None
    l3connectivities: List[L3Connectivity] = field(default_factory=list)
    names: List[HostName] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LanInterfaceHost:
        """Create from API response dict."""
        l2ident = data.get("l2ident")
        return cls(
            id=data["id"],
            primary_name=data.get("primary_name"),
            host_type=data.get("host_type"),
            primary_name_manual=data.get("primary_name_manual", False),
            vendor_name=data.get("vendor_name"),
            persistent=data.get("persistent", False),
            reachable=data.get("reachable", False),
            active=data.get("active", False),
            last_activity=data.get("last_activity"),
            first_activity=data.get("first_activity"),
            last_time_reachable=data.get("last_time_reachable"),
            interface=data.get("interface"),
            l2ident=L2Ident.from_dict(l2ident) if l2ident else None,
            l3connectivities=[
                L3Connectivity.from_dict(c) for c in data.get("l3connectivities") or []
            ],
            names=[HostName.from_dict(n) for n in data.get("names") or []],
        )


@dataclass
class LanInfo(FreeboxModel):
    """A LAN interface known to the browser."""

    name: str
    host_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LanInfo:
        """Create from API response dict."""
        return cls(name=data["name"], host_count=data.get("host_count", 0))


def _optional_host(data: Dict[str, Any]) -> Optional[LanInterfaceHost]:
    host = data.get("host")
    return LanInterfaceHost.from_dict(host) if host else None


# =============================================================================
# Port forwarding
# =============================================================================


@dataclass
class PortForwardingRulePayload:
    """Fields accepted when creating or updating a port forwarding rule."""

    enabled: Optional[bool] = None
    ip_proto: Optional[str] = None
    wan_port_start: Optional[int] = None
    wan_port_end: Optional[int] = None
    lan_ip: Optional[str] = None
    lan_port: Optional[int] = None
    src_ip: Optional[str] = None
    comment: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Convert to request payload, leaving out unset fields."""
        return _without_none(asdict(self))


@dataclass
class PortForwardingRule(FreeboxModel):
    """A port forwarding rule."""

    id: int
    enabled: bool = False
    ip_proto: Optional[str] = None
    wan_port_start: Optional[int] = None
    wan_port_end: Optional[int] = None
    lan_ip: Optional[str] = None
    lan_port: Optional[int] = None
    src_ip: Optional[str] = None
    comment: Optional[str] = None
    valid: bool = False
    hostname: Optional[str] = None
    host: Optional[LanInterfaceHost] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PortForwardingRule:
        """Create from API response dict."""
        return cls(
            id=data["id"],
            enabled=data.get("enabled", False),
            ip_proto=data.get("ip_proto"),
            wan_port_start=data.get("wan_port_start"),
            wan_port_end=data.get("wan_port_end"),
            lan_ip=data.get("lan_ip"),
            lan_port=data.get("lan_port"),
            src_ip=data.get("src_ip"),
            comment=data.get("comment"),
            valid=data.get("valid", False),
            hostname=data.get("hostname"),
            host=_optional_host(data),
        )


# =============================================================================
# DHCP
# =============================================================================


@dataclass
class DHCPStaticLeasePayload:
    """Fields accepted when creating or updating a static lease."""

    mac: Optional[str] = None
    ip: Optional[str] = None
    comment: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Convert to request payload, leaving out unset fields."""
        return _without_none(asdict(self))


@dataclass
class DHCPStaticLeaseInfo(FreeboxModel):
    """A DHCP static lease."""

    id: str
    mac: Optional[str] = None
    ip: Optional[str] = None
    comment: Optional[str] = None
    hostname: Optional[str] = None
    host: Optional[LanInterfaceHost] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DHCPStaticLeaseInfo:
        """Create from API response dict."""
        return cls(
            id=data["id"],
            mac=data.get("mac"),
            ip=data.get("ip"),
            comment=data.get("comment"),
            hostname=data.get("hostname"),
            host=_optional_host(data),
        )


# =============================================================================
# Virtual machines
# =============================================================================


@dataclass
class VirtualMachinesInfo(FreeboxModel):
    """Resources available to virtual machines."""

    usb_used: bool = False
    sata_used: bool = False
    sata_ports: List[str] = field(default_factory=list)
    used_memory: int = 0
    usb_ports: List[str] = field(default_factory=list)
    used_cpus: int = 0
    total_memory: int = 0
    total_cpus: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> VirtualMachinesInfo:
        """Create from API response dict."""
        return cls(
            usb_used=data.get("usb_used", False),
            sata_used=data.get("sata_used", False),
            sata_ports=list(data.get("sata_ports") or []),
            used_memory=data.get("used_memory", 0),
            usb_ports=list(data.get("usb_ports") or []),
            used_cpus=data.get("used_cpus", 0),
            total_memory=data.get("total_memory", 0),
            total_cpus=data.get("total_cpus", 0),
        )


@dataclass
class VirtualMachineDistribution(FreeboxModel):
    """A ready to use disk image offered by the Freebox."""

    name: str
    os: Optional[str] = None
    url: Optional[str] = None
    hash: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> VirtualMachineDistribution:
        """Create from API response dict."""
        return cls(
            name=data["name"],
            os=data.get("os"),
            url=data.get("url"),
            hash=data.get("hash"),
        )


@dataclass
class VirtualMachinePayload:
    """Fields accepted when creating or updating a virtual machine.

    ``disk_path`` and ``cd_path`` are plain paths, they are base64 encoded on
    the way out.
    """

    name: Optional[str] = None
    disk_path: Optional[str] = None
    disk_type: Optional[str] = None
    cd_path: Optional[str] = None
    memory: Optional[int] = None
    os: Optional[str] = None
    vcpus: Optional[int] = None
    enable_screen: Optional[bool] = None
    bind_usb_ports: Optional[List[str]] = None
    enable_cloudinit: Optional[bool] = None
    cloudinit_userdata: Optional[str] = None
    cloudinit_hostname: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Convert to request payload, leaving out unset fields."""
        payload = asdict(self)
        payload["disk_path"] = _encode_optional_path(self.disk_path)
        payload["cd_path"] = _encode_optional_path(self.cd_path)
        return _without_none(payload)


@dataclass
class VirtualMachine(FreeboxModel):
    """A virtual machine."""

    id: int
    name: Optional[str] = None
    mac: Optional[str] = None
    status: Optional[str] = None
    disk_path: Optional[str] = None
    disk_type: Optional[str] = None
    cd_path: Optional[str] = None
    memory: int = 0
    os: Optional[str] = None
    vcpus: int = 0
    enable_screen: bool = False
    bind_usb_ports: List[str] = field(default_factory=list)
    enable_cloudinit: bool = False
    cloudinit_userdata: Optional[str] = None
    cloudinit_hostname: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> VirtualMachine:
        """Create from API response dict."""
        return cls(
            id=data["id"],
            name=data.get("name"),
            mac=data.get("mac"),
            status=data.get("status"),
            disk_path=decode_path(data.get("disk_path")),
            disk_type=data.get("disk_type"),
            cd_path=decode_path(data.get("cd_path")),
            memory=data.get("memory", 0),
            os=data.get("os"),
            vcpus=data.get("vcpus", 0),
            enable_screen=data.get("enable_screen", False),
            bind_usb_ports=decode_usb_ports(data.get("bind_usb_ports", "")),
            enable_cloudinit=data.get("enable_cloudinit", False),
            cloudinit_userdata=data.get("cloudinit_userdata"),
            cloudinit_hostname=data.get("cloudinit_hostname"),
        )


@dataclass
class VirtualDiskInfo(FreeboxModel):
    """Description of a virtual disk image."""

    type: Optional[str] = None
    actual_size: int = 0
    virtual_size: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> VirtualDiskInfo:
        """Create from API response dict."""
        return cls(
            type=data.get("type"),
            actual_size=data.get("actual_size", 0),
            virtual_size=data.get("virtual_size", 0),
        )


@dataclass
class VirtualDiskTask(FreeboxModel):
    """A disk creation or resize task."""

    id: int
    type: Optional[str] = None
    done: bool = False
    error: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> VirtualDiskTask:
        """Create from API response dict."""
        return cls(
            id=data["id"],
            type=data.get("type"),
            done=data.get("done", False),
            error=data.get("error", False),
        )


@dataclass
class VirtualDiskCreatePayload:
    """Disk creation request."""

    disk_path: str
    size: int
    disk_type: str = DISK_TYPE_QCOW2

    def to_payload(self) -> Dict[str, Any]:
        """Convert to request payload."""
        return {
            "disk_path": encode_path(self.disk_path),
            "size": self.size,
            "disk_type": self.disk_type,
        }


@dataclass
class VirtualDiskResizePayload:
    """Disk resize request."""

    disk_path: str
    size: int
    shrink_allow: bool = False

    def to_payload(self) -> Dict[str, Any]:
        """Convert to request payload."""
        return {
            "disk_path": encode_path(self.disk_path),
            "size": self.size,
            "shrink_allow": self.shrink_allow,
        }


# =============================================================================
# Filesystem
# =============================================================================


@dataclass
class FileInfo(FreeboxModel):
    """Metadata of a file or directory."""

    path: Optional[str] = None
    name: Optional[str] = None
    mimetype: Optional[str] = None
    type: Optional[str] = None
    size: int = 0
    modification: Optional[int] = None
    index: Optional[int] = None
    link: bool = False
    target: Optional[str] = None
    hidden: bool = False
    foldercount: int = 0
    filecount: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FileInfo:
        """Create from API response dict."""
        return cls(
            path=decode_path(data.get("path")),
            name=data.get("name"),
            mimetype=data.get("mimetype"),
            type=data.get("type"),
            size=data.get("size", 0),
            modification=data.get("modification"),
            index=data.get("index"),
            link=data.get("link", False),
            target=decode_path(data.get("target")),
            hidden=data.get("hidden", False),
            foldercount=data.get("foldercount", 0),
            filecount=data.get("filecount", 0),
        )


@dataclass
class FileSystemTask(FreeboxModel):
    """A long running filesystem operation."""

    id: int
    type: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    created_ts: Optional[int] = None
    started_ts: Optional[int] = None
    done_ts: Optional[int] = None
    duration: int = 0
    progress: int = 0
    eta: int = 0
    from_: Optional[str] = None
    to: Optional[str] = None
    nfiles: int = 0
    nfiles_done: int = 0
    nbytes: int = 0
    nbytes_done: int = 0
    curr_bytes: int = 0
    curr_bytes_done: int = 0
    rate: int = 0
    src: List[str] = field(default_factory=list)
    dst: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FileSystemTask:
        """Create from API response dict."""
        return cls(
            id=data["id"],
            type=data.get("type"),
            state=data.get("state"),
            error=data.get("error"),
            created_ts=data.get("created_ts"),
            started_ts=data.get("started_ts"),
            done_ts=data.get("done_ts"),
            duration=data.get("duration", 0),
            progress=data.get("progress", 0),
            eta=data.get("eta", 0),
            from_=data.get("from"),
            to=data.get("to"),
            nfiles=data.get("nfiles", 0),
            nfiles_done=data.get("nfiles_done", 0),
            nbytes=data.get("nbytes", 0),
            nbytes_done=data.get("nbytes_done", 0),
            curr_bytes=data.get("curr_bytes", 0),
            curr_bytes_done=data.get("curr_bytes_done", 0),
            rate=data.get("rate", 0),
            src=[p for p in (decode_path(s) for s in data.get("src") or []) if p is not None],
            dst=decode_path(data.get("dst")),
        )


@dataclass
class HashPayload:
    """Hash task request."""

    src: str
    hash_type: str = "sha256"

    def to_payload(self) -> Dict[str, Any]:
        """Convert to request payload."""
        if self.hash_type not in HASH_TYPES:
            raise ValueError(f"unsupported hash type: {self.hash_type}")
        return {"src": encode_path(self.src), "hash_type": self.hash_type}


@dataclass
class ExtractFilePayload:
    """Archive extraction request."""

    src: str
    dst: str
    password: Optional[str] = None
    delete_archive: bool = False
    overwrite: bool = False

    def to_payload(self) -> Dict[str, Any]:
        """Convert to request payload."""
        return _without_none({
            "src": encode_path(self.src),
            "dst": encode_path(self.dst),
            "password": self.password,
            "delete_archive": self.delete_archive,
            "overwrite": self.overwrite,
        })


# =============================================================================
# Downloads
# =============================================================================


@dataclass
class DownloadTask(FreeboxModel):
    """A download manager task."""

    id: int
    type: Optional[str] = None
    name: Optional[str] = None
    status: Optional[str] = None
    size: int = 0
    queue_pos: int = 0
    io_priority: Optional[str] = None
    tx_bytes: int = 0
    rx_bytes: int = 0
    tx_rate: int = 0
    rx_rate: int = 0
    tx_pct: int = 0
    rx_pct: int = 0
    error: Optional[str] = None
    created_ts: Optional[int] = None
    eta: int = 0
    download_dir: Optional[str] = None
    stop_ratio: int = 0
    archive_password: Optional[str] = None
    info_hash: Optional[str] = None
    piece_length: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DownloadTask:
        """Create from API response dict."""
        return cls(
            id=data["id"],
            type=data.get("type"),
            name=data.get("name"),
            status=data.get("status"),
            size=data.get("size", 0),
            queue_pos=data.get("queue_pos", 0),
            io_priority=data.get("io_priority"),
            tx_bytes=data.get("tx_bytes", 0),
            rx_bytes=data.get("rx_bytes", 0),
            tx_rate=data.get("tx_rate", 0),
            rx_rate=data.get("rx_rate", 0),
            tx_pct=data.get("tx_pct", 0),
            rx_pct=data.get("rx_pct", 0),
            error=data.get("error"),
            created_ts=data.get("created_ts"),
            eta=data.get("eta", 0),
            download_dir=decode_path(data.get("download_dir")),
            stop_ratio=data.get("stop_ratio", 0),
            archive_password=data.get("archive_password"),
            info_hash=data.get("info_hash"),
            piece_length=data.get("piece_length", 0),
        )


@dataclass
class DownloadRequest:
    """Request to add one or several downloads.

    Sent form encoded, booleans are spelled ``true``/``false``.
    """

    download_urls: List[str]
    download_dir: Optional[str] = None
    filename: Optional[str] = None
    hash: Optional[str] = None
    recursive: Optional[bool] = None
    username: Optional[str] = None
    password: Optional[str] = None
    archive_password: Optional[str] = None
    cookies: Optional[str] = None

    def to_form(self) -> Dict[str, str]:
        """Convert to form fields."""
        if not self.download_urls:
            raise ValueError("at least one download url is required")
        form: Dict[str, Any] = {
            "download_dir": _encode_optional_path(self.download_dir),
            "filename": self.filename,
            "hash": self.hash,
            "username": self.username,
            "password": self.password,
            "archive_password": self.archive_password,
            "cookies": self.cookies,
        }
        if len(self.download_urls) == 1:
            form["download_url"] = self.download_urls[0]
        else:
            form["download_url_list"] = "\n".join(self.download_urls)
        if self.recursive is not None:
            form["recursive"] = "true" if self.recursive else "false"
        return _without_none(form)


@dataclass
class DownloadTaskUpdate:
    """Fields accepted when updating a download task."""

    io_priority: Optional[str] = None
    status: Optional[str] = None
    queue_pos: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        """Convert to request payload, leaving out unset fields."""
        return _without_none(asdict(self))


# =============================================================================
# Uploads
# =============================================================================


@dataclass
class UploadTask(FreeboxModel):
    """A file upload tracked by the Freebox."""

    id: int
    size: int = 0
    uploaded: int = 0
    status: Optional[str] = None
    start_date: Optional[int] = None
    last_update: Optional[int] = None
    upload_name: Optional[str] = None
    dirname: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> UploadTask:
        """Create from API response dict."""
        return cls(
            id=data["id"],
            size=data.get("size", 0),
            uploaded=data.get("uploaded", 0),
            status=data.get("status"),
            start_date=data.get("start_date"),
            last_update=data.get("last_update"),
            upload_name=data.get("upload_name"),
            dirname=data.get("dirname"),
        )


@dataclass
class FileUploadStart:
    """Parameters of a new upload.

    ``force`` is ``"overwrite"`` or ``"resume"``; left unset the upload fails
    when the destination exists.
    """

    dirname: str
    filename: str
    size: int
    force: Optional[str] = None

    def to_action(self, request_id: int) -> Dict[str, Any]:
        """Convert to the upload_start websocket action."""
        return _without_none({
            "action": "upload_start",
            "request_id": request_id,
            "size": self.size,
            "dirname": encode_path(self.dirname),
            "filename": self.filename,
            "force": self.force,
        })


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class EventDescription:
    """An event to subscribe to, e.g. source ``vm`` and name ``state_changed``."""

    source: str
    name: str

    @property
    def topic(self) -> str:
        """Get the name used to register the event."""
        return f"{self.source}_{self.name}"


@dataclass
class Event(FreeboxModel):
    """A notification received on the event stream."""

    source: str
    name: str
    result: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Event:
        """Create from a websocket notification dict."""
        return cls(source=data["source"], name=data["event"], result=data.get("result"))
