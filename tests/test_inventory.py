"""Tests for the volume inventory."""

import subprocess

import pytest

from lvm_backup_ng.__util__ import InventoryError
from lvm_backup_ng.lvm import Volume, list_volumes, parse_volume_rows
from lvm_backup_ng.lvm.inventory import VOLUME_FIELDS

LVS_OUTPUT = """\
  root|vg0|/dev/vg0/root|10737418240B|-wi-ao----||linear
  swap|vg0|/dev/vg0/swap|2147483648B|-wi-ao----||linear
  pool|vg1|/dev/vg1/pool|53687091200B|twi-aotz--||thin-pool
  home|vg1|/dev/vg1/home|21474836480B|Vwi-aotz--||thin
"""


class TestParseVolumeRows:
    """Tests for parse_volume_rows function."""

    def test_parses_rows(self):
        """Test every row becomes a Volume with normalized fields."""
        volumes = parse_volume_rows(LVS_OUTPUT)

        assert [v.full_name for v in volumes] == [
            "vg0/root",
            "vg0/swap",
            "vg1/pool",
            "vg1/home",
        ]
        root = volumes[0]
        assert root.path == "/dev/vg0/root"
        assert root.size == 10737418240
        assert root.attr == "-wi-ao----"
        assert root.origin == ""
        assert root.segtype == "linear"

    def test_strips_padding(self):
        """Test whitespace around fields is removed."""
        line = "   data | vg0 | /dev/vg0/data | 1024B | -wi-a----- |  | linear  \n"
        volumes = parse_volume_rows(line)
        assert volumes[0].name == "data"
        assert volumes[0].group == "vg0"

    def test_snapshot_origin(self):
        """Test the origin column is kept for snapshots."""
        text = "  xsnap_root|vg0|/dev/vg0/xsnap_root|1024B|swi-a-s---|root|linear\n"
        volume = parse_volume_rows(text)[0]
        assert volume.origin == "root"
        assert volume.facts.is_cow

    def test_duplicates_dropped(self):
        """Test duplicate rows keep only the first occurrence."""
        line = "  root|vg0|/dev/vg0/root|1024B|-wi-a-----||linear\n"
        assert len(parse_volume_rows(line * 3)) == 1

    def test_blank_lines_ignored(self):
        """Test empty output lines are skipped."""
        assert parse_volume_rows("\n\n   \n") == []

    def test_wrong_field_count(self):
        """Test a row with the wrong number of fields is rejected."""
        with pytest.raises(InventoryError, match="expected 7 fields, got 3"):
            parse_volume_rows("  root|vg0|-wi-a-----\n")

    def test_invalid_size(self):
        """Test a non-numeric size is rejected."""
        with pytest.raises(InventoryError, match="Invalid volume size"):
            parse_volume_rows("  root|vg0|/dev/vg0/root|lots|-wi-a-----||linear\n")

    def test_field_order(self):
        """Test the column order matches the Volume fields."""
        assert VOLUME_FIELDS == (
            "name",
            "group",
            "path",
            "size",
            "attr",
            "origin",
            "segtype",
        )


class TestVolume:
    """Tests for the Volume dataclass."""

    def test_full_name_and_str(self):
        """Test the VOLUME_GROUP/VOLUME_NAME representation."""
        volume = Volume("root", "vg0", "/dev/vg0/root", 0, "-wi-a-----")
        assert volume.full_name == "vg0/root"
        assert str(volume) == "vg0/root"

    def test_facts_decoded(self):
        """Test attribute facts are derived from attr."""
        volume = Volume("pool", "vg0", "", 0, "twi-aotz--")
        assert volume.facts.volume_type == "thin pool"


class TestListVolumes:
    """Tests for list_volumes function."""

    def test_lists_through_host(self, host):
        """Test volumes come from the host's lvs listing."""
        volumes = list_volumes(host)
        assert [v.full_name for v in volumes] == ["vg0/root"]
        assert host.ops() == ["lvs"]

    def test_lvs_failure(self, host):
        """Test a failing lvs call raises InventoryError."""
        host.fail["lvs"] = 1
        with pytest.raises(InventoryError, match="Could not list logical volumes"):
            list_volumes(host)

    def test_called_process_error_not_leaked(self, host):
        """Test the subprocess error is chained, not raised directly."""
        host.fail["lvs"] = 1
        with pytest.raises(InventoryError) as excinfo:
            list_volumes(host)
        assert isinstance(excinfo.value.__cause__, subprocess.CalledProcessError)
