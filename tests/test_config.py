import json

from geostamp_cam import config as cfgmod


def write(path, data):
    path.write_text(data if isinstance(data, str) else json.dumps(data))
    return str(path)


def test_defaults_when_nothing_found(tmp_path):
    cfg = cfgmod.load_config([str(tmp_path / "missing.json")])
    assert cfg == cfgmod.DEFAULT
    cfg["marker"]["default_size"] = 1
    assert cfgmod.DEFAULT["marker"]["default_size"] == 90


def test_partial_file_is_merged(tmp_path):
    p = write(tmp_path / "c.json", {"search": {"debounce_ms": 500}, "extra": 1})
    cfg = cfgmod.load_config([p])
    assert cfg["search"]["debounce_ms"] == 500
    assert cfg["search"]["providers"] == ["photon", "nominatim"]
    assert cfg["extra"] == 1
    assert cfgmod.DEFAULT["search"]["debounce_ms"] == 350


def test_unreadable_files_are_skipped(tmp_path):
    broken = write(tmp_path / "broken.json", "{not json")
    listed = write(tmp_path / "list.json", [1, 2])
    good = write(tmp_path / "good.json", {"output": {"quality": 70}})
    cfg = cfgmod.load_config([broken, listed, good])
    assert cfg["output"]["quality"] == 70


def test_save_then_load(tmp_path):
    cfg = cfgmod.load_config([])
    cfg["location"] = {"enabled": True, "latitude": 1.5, "longitude": 2.5}
    path = cfgmod.save_config(cfg, str(tmp_path / "saved.json"))
    assert not (tmp_path / "saved.json.tmp").exists()
    assert cfgmod.load_config([path])["location"]["latitude"] == 1.5
