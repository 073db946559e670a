import json

import yaml

from generate_manifest import main


def test_generate_manifest_from_local_file(tmp_path, petstore, capsys):
    spec_path = tmp_path / "petstore.yaml"
    spec_path.write_text(yaml.safe_dump(petstore))
    output = tmp_path / "mcp.json"

    main([str(spec_path), "--output", str(output), "--port", "4200"])

    manifest = json.loads(output.read_text())
    assert manifest["server"]["url"] == "http://localhost:4200"
    assert [tool["name"] for tool in manifest["tools"]][0] == "GET /pet"
    assert "Loaded API: Petstore" in capsys.readouterr().out
