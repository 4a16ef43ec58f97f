"""Unit tests for DeviceControlFactory."""

from unittest.mock import Mock

import pytest

from devicerun.core.protocols import ProcessExecutor
from devicerun.deploy.base import Platform
from devicerun.deploy.control import DeviceCtlControl, SimctlControl
from devicerun.deploy.factory import DeviceControlFactory


class TestParseDeviceString:
    """Test the `run [DEVICE]` argument formats."""

    def test_no_device_selects_from_catalog(self):
        assert DeviceControlFactory.parse_device_string(None) == (Platform.DEVICE, None)

    def test_blank_device_selects_from_catalog(self):
        assert DeviceControlFactory.parse_device_string("  ") == (Platform.DEVICE, None)

    def test_explicit_device(self):
        result = DeviceControlFactory.parse_device_string("00008110-001A2B3C")

        assert result == (Platform.DEVICE, "00008110-001A2B3C")

    def test_simulator_flag(self):
        assert DeviceControlFactory.parse_device_string(None, simulator=True) == (Platform.SIMULATOR, None)

    def test_simulator_keyword(self):
        assert DeviceControlFactory.parse_device_string("simulator") == (Platform.SIMULATOR, None)

    def test_sim_prefix_with_udid(self):
        result = DeviceControlFactory.parse_device_string("sim:5F3C1A2B-0000")

        assert result == (Platform.SIMULATOR, "5F3C1A2B-0000")

    def test_bare_sim_prefix_means_booted(self):
        assert DeviceControlFactory.parse_device_string("sim:") == (Platform.SIMULATOR, None)

    def test_whitespace_in_identifier_rejected(self):
        with pytest.raises(ValueError, match="Unknown device format"):
            DeviceControlFactory.parse_device_string("my phone")


class TestForPlatform:
    """Test control layer routing."""

    def test_device_uses_devicectl(self):
        control = DeviceControlFactory.for_platform(Platform.DEVICE, Mock(spec=ProcessExecutor))

        assert isinstance(control, DeviceCtlControl)

    def test_simulator_uses_simctl(self):
        control = DeviceControlFactory.for_platform(Platform.SIMULATOR, Mock(spec=ProcessExecutor))

        assert isinstance(control, SimctlControl)
