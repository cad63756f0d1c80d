"""Tests for config loader module."""

import tomllib
from pathlib import Path

import pytest

from lvm_backup_ng.config import (
    BackupConfig,
    loader,
    prepare_dest_prefix,
    validate_config,
)
from lvm_backup_ng.config.loader import (
    ConfigError,
    find_config_file,
    generate_example_config,
    load_config,
)


@pytest.fixture
def config_file(tmp_path):
    """Write a config file and return its path."""

    def write(content):
        path = tmp_path / "config.toml"
        path.write_text(content)
        return path

    return write


class TestFindConfigFile:
    """Tests for find_config_file function."""

    def test_explicit_path_exists(self, config_file):
        """Test finding explicitly specified config file."""
        path = config_file("[backup]\n")
        assert find_config_file(str(path)) == path

    def test_explicit_path_not_exists(self, tmp_path):
        """Test error when explicit path doesn't exist."""
        with pytest.raises(ConfigError, match="not found"):
            find_config_file(str(tmp_path / "nonexistent.toml"))

    def test_search_paths(self, tmp_path, monkeypatch):
        """Test the first existing search path wins."""
        second = tmp_path / "etc.toml"
        second.write_text("[backup]\n")
        monkeypatch.setattr(loader, "CONFIG_PATHS", [tmp_path / "user.toml", second])
        assert find_config_file(None) == second

    def test_no_config_found(self, tmp_path, monkeypatch):
        """Test returning None when no search path exists."""
        monkeypatch.setattr(loader, "CONFIG_PATHS", [tmp_path / "missing.toml"])
        assert find_config_file(None) is None


class TestLoadConfig:
    """Tests for load_config function."""

    def test_full_config(self, config_file):
        """Test every option is read from the [backup] table."""
        path = config_file(
            """
[backup]
snapshot_prefix = "bk_"
include = ["vg0/root", "vg0/home"]
exclude = ["vg0/swap"]
part_rw = true
overwrite = true
dest_prefix = "/srv/backup/"
compression = "xz"
ignore_mount_errors = true
cleanup_remnants_first = false
mount_root = "/run/lvm-backup"
lock_file = ""
kill_grace_seconds = 5
poll_interval = 0.5
transaction_log = "/var/log/lvm-backup.jsonl"
"""
        )

        config = load_config(path)

        assert config.snapshot_prefix == "bk_"
        assert config.include == ["vg0/root", "vg0/home"]
        assert config.exclude == ["vg0/swap"]
        assert config.part_rw is True
        assert config.overwrite is True
        assert config.dest_prefix == "/srv/backup/"
        assert config.archive_extension == ".tar.xz"
        assert config.ignore_mount_errors is True
        assert config.cleanup_remnants_first is False
        assert config.mount_root == "/run/lvm-backup"
        assert config.lock_file == ""
        assert config.kill_grace_seconds == 5.0
        assert config.poll_interval == 0.5
        assert config.transaction_log == "/var/log/lvm-backup.jsonl"

    def test_empty_file_gives_defaults(self, config_file):
        """Test an empty file yields the default configuration."""
        assert load_config(config_file("")) == BackupConfig()

    def test_invalid_toml(self, config_file):
        """Test a syntax error is reported."""
        with pytest.raises(ConfigError, match="Invalid TOML syntax"):
            load_config(config_file("[backup\n"))

    def test_unreadable(self, tmp_path):
        """Test a missing file is reported."""
        with pytest.raises(ConfigError, match="Cannot read config file"):
            load_config(tmp_path / "missing.toml")

    def test_unknown_option(self, config_file):
        """Test misspelled options are rejected."""
        with pytest.raises(ConfigError, match="Unknown option.*snapshot_prefx"):
            load_config(config_file('[backup]\nsnapshot_prefx = "x"\n'))

    @pytest.mark.parametrize(
        "line,message",
        [
            ('include = "vg0/root"', "list of strings"),
            ("overwrite = 1", "true or false"),
            ('poll_interval = "fast"', "must be a number"),
            ("kill_grace_seconds = true", "must be a number"),
            ("dest_prefix = 3", "must be a string"),
        ],
    )
    def test_wrong_types(self, config_file, line, message):
        """Test values of the wrong type are rejected."""
        with pytest.raises(ConfigError, match=message):
            load_config(config_file(f"[backup]\n{line}\n"))

    def test_example_config_loads(self, config_file):
        """Test the generated example is a valid configuration."""
        config = load_config(config_file(generate_example_config()))
        assert config.exclude == ["vg0/swap"]

    def test_example_config_is_toml(self):
        """Test the generated example parses as TOML."""
        assert "backup" in tomllib.loads(generate_example_config())


class TestValidateConfig:
    """Tests for validate_config function."""

    def test_defaults_valid(self):
        """Test the defaults pass validation."""
        validate_config(BackupConfig())

    @pytest.mark.parametrize(
        "changes,message",
        [
            ({"snapshot_prefix": ""}, "must not be empty"),
            ({"snapshot_prefix": "a/b"}, "must not contain"),
            ({"include": ["root"]}, "VOLUME_GROUP/VOLUME_NAME"),
            ({"exclude": ["vg0/root/x"]}, "VOLUME_GROUP/VOLUME_NAME"),
            ({"compression": "lz4"}, "Unknown compression"),
            ({"mirror": True, "mirror_command": "rsync -a {src}/ /x"}, "{dest}"),
            ({"kill_grace_seconds": -1.0}, "must not be negative"),
            ({"poll_interval": 0.0}, "must be positive"),
        ],
    )
    def test_invalid(self, changes, message):
        """Test each invalid setting is rejected."""
        config = BackupConfig(**changes)
        with pytest.raises(ConfigError, match=message.replace("{", r"\{")):
            validate_config(config)

    def test_mirror_template_ignored_when_archiving(self):
        """Test the mirror template is only checked in mirror mode."""
        validate_config(BackupConfig(mirror_command="rsync"))


class TestPrepareDestPrefix:
    """Tests for prepare_dest_prefix function."""

    def test_empty_means_current_directory(self):
        """Test an empty prefix becomes ./."""
        assert prepare_dest_prefix("") == "./"

    def test_trailing_slash_creates_directory(self, tmp_path):
        """Test a directory prefix is created when missing."""
        target = tmp_path / "a" / "b"
        assert prepare_dest_prefix(f"{target}/") == f"{target}/"
        assert target.is_dir()

    def test_existing_directory_gets_slash(self, tmp_path):
        """Test an existing directory given without slash is treated as one."""
        assert prepare_dest_prefix(str(tmp_path)) == f"{tmp_path}/"

    def test_file_prefix_unchanged(self, tmp_path):
        """Test a plain file name prefix is kept as is."""
        prefix = str(tmp_path / "backup-")
        assert prepare_dest_prefix(prefix) == prefix
        assert not Path(prefix).exists()

    def test_uncreatable_directory(self, tmp_path):
        """Test a directory that cannot be created is a config error."""
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(ConfigError, match="Cannot create destination"):
            prepare_dest_prefix(f"{blocker}/sub/")
