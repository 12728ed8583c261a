"""Tests for data classes."""

import pytest

from mcp_freebox.envelope import encode_path
from mcp_freebox.types import (
    APIVersion,
    DownloadRequest,
    Event,
    EventDescription,
    FileSystemTask,
    FileUploadStart,
    HashPayload,
    PortForwardingRule,
    VirtualMachine,
)


class TestVirtualMachine:
    """Tests for VirtualMachine."""

    def test_defaults_for_missing_fields(self) -> None:
        """Test a minimal VM decodes with empty bindings."""
        vm = VirtualMachine.from_dict({"id": 3})
        assert vm.bind_usb_ports == []
        assert vm.disk_path is None
        assert vm.enable_screen is False

    def test_to_dict_excludes_none(self) -> None:
        """Test to_dict leaves out unset fields."""
        result = VirtualMachine.from_dict({"id": 3, "name": "vm", "bind_usb_ports": ""}).to_dict()
        assert result["name"] == "vm"
        assert "mac" not in result
        assert result["bind_usb_ports"] == []


class TestFileSystemTask:
    """Tests for FileSystemTask."""

    def test_from_is_renamed(self) -> None:
        """Test the reserved 'from' key maps to from_."""
        task = FileSystemTask.from_dict({
            "id": 1, "from": "a.zip", "to": "b", "dst": encode_path("/Freebox/b"),
        })
        assert task.from_ == "a.zip"
        assert task.dst == "/Freebox/b"


class TestPayloads:
    """Tests for request payload builders."""

    def test_download_request_multiple_urls(self) -> None:
        """Test several URLs are sent as a newline separated list."""
        form = DownloadRequest(["http://a/1", "http://a/2"], recursive=True).to_form()
        assert form == {"download_url_list": "http://a/1\nhttp://a/2", "recursive": "true"}

    def test_download_request_needs_url(self) -> None:
        """Test an empty request is rejected."""
        with pytest.raises(ValueError):
            DownloadRequest([]).to_form()

    def test_hash_payload_rejects_unknown_algorithm(self) -> None:
        """Test only the supported hash types are accepted."""
        with pytest.raises(ValueError):
            HashPayload("/Freebox/a", "crc32").to_payload()

    def test_upload_start_action(self) -> None:
        """Test the upload_start action encodes the directory."""
        action = FileUploadStart(dirname="/Freebox", filename="a.txt", size=5).to_action(7)
        assert action == {
            "action": "upload_start",
            "request_id": 7,
            "size": 5,
            "dirname": encode_path("/Freebox"),
            "filename": "a.txt",
        }


class TestEvents:
    """Tests for event types."""

    def test_topic(self) -> None:
        """Test an event description registers as source_name."""
        assert EventDescription("vm", "state_changed").topic == "vm_state_changed"

    def test_event_from_notification(self) -> None:
        """Test a notification message decodes into an Event."""
        event = Event.from_dict({
            "action": "notification",
            "success": True,
            "source": "vm",
            "event": "state_changed",
            "result": {"id": 0, "status": "running"},
        })
        assert event == Event(source="vm", name="state_changed", result={"id": 0, "status": "running"})


def test_api_version_ignores_unknown_keys() -> None:
    """Test fields added by newer firmwares do not break decoding."""
    version = APIVersion.from_dict({"api_version": "8.0", "brand_new": 1})
    assert version.api_version == "8.0"


def test_port_forwarding_rule_to_dict_nests_host() -> None:
    """Test nested resources are converted too."""
    rule = PortForwardingRule.from_dict({"id": 1, "host": {"id": "ether-x", "primary_name": "nas"}})
    assert rule.to_dict()["host"]["primary_name"] == "nas"
