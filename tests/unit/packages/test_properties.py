"""Unit tests for properties maps."""

import pytest

from boardmgr.packages.properties import PropertiesError, PropertiesMap


class TestPropertiesMap:
    """Test cases for PropertiesMap class."""

    def test_loads_skips_comments_and_blank_lines(self):
        props = PropertiesMap.loads("# comment\n\nname=Test\n  version = 1.0 \n", os_suffix="linux")
        assert props.keys() == ["name", "version"]
        assert props.get("version") == "1.0"

    def test_value_may_contain_equals(self):
        props = PropertiesMap.loads("recipe=gcc -DX=1\n", os_suffix="linux")
        assert props.get("recipe") == "gcc -DX=1"

    def test_os_suffix_overrides_plain_key(self):
        """Test the value for the running OS replaces the plain key."""
        text = "tools.cmd=bossac\ntools.cmd.windows=bossac.exe\ntools.cmd.linux=bossac-linux\n"
        linux = PropertiesMap.loads(text, os_suffix="linux")
        windows = PropertiesMap.loads(text, os_suffix="windows")
        macosx = PropertiesMap.loads(text, os_suffix="macosx")
        assert linux.get("tools.cmd") == "bossac-linux"
        assert windows.get("tools.cmd") == "bossac.exe"
        assert macosx.get("tools.cmd") == "bossac"
        assert "tools.cmd.windows" not in linux

    def test_malformed_line(self):
        with pytest.raises(PropertiesError, match="invalid line 2"):
            PropertiesMap.loads("a=1\nnot a property\n", os_suffix="linux")

    def test_load_file_error(self, tmp_path):
        with pytest.raises(PropertiesError):
            PropertiesMap.load(tmp_path / "missing.txt")

    def test_sub_tree(self):
        props = PropertiesMap({"uno.name": "Uno", "uno.build.mcu": "atmega328p", "nano.name": "Nano"})
        uno = props.sub_tree("uno")
        assert uno.as_dict() == {"name": "Uno", "build.mcu": "atmega328p"}

    def test_first_level_keys_keep_order(self):
        props = PropertiesMap({"b.x": "1", "a.y": "2", "b.z": "3", "c": "4"})
        assert props.first_level_keys() == ["b", "a", "c"]
        assert props.first_level_of()["b"].as_dict() == {"x": "1", "z": "3"}

    def test_merge_later_wins(self):
        base = PropertiesMap({"a": "1", "b": "2"})
        result = base.merge(PropertiesMap({"b": "3"}), PropertiesMap({"c": "4"}))
        assert result is base
        assert base.as_dict() == {"a": "1", "b": "3", "c": "4"}

    def test_clone_is_independent(self):
        original = PropertiesMap({"a": "1"})
        copy = original.clone()
        copy.set("a", "2")
        assert original.get("a") == "1"
        assert copy != original
