from portal_setup.env_emitter import generate_env, render_client_env, render_server_env
from portal_setup.provisioner import ArtefactBundle


def _bundle(**overrides) -> ArtefactBundle:
    values = dict(
        portal={"client_id": "P1"},
        backend={"client_id": "B1", "client_secret": "S1"},
        api={"id": "api"},
        rule={"id": "rule"},
        mgmt_grant={"id": "grant"},
    )
    values.update(overrides)
    return ArtefactBundle(**values)


def test_client_env_lines(setup_config):
    assert render_client_env(_bundle(), setup_config).splitlines() == [
        "REACT_APP_domain=t.example.com",
        "REACT_APP_clientID=P1",
        "REACT_APP_audience=urn:self-service-portal-api",
    ]


def test_server_env_lines(setup_config):
    assert render_server_env(_bundle(), setup_config).splitlines() == [
        "NON_INTERACTIVE_CLIENT_ID=B1",
        "NON_INTERACTIVE_CLIENT_SECRET=S1",
        "DOMAIN=t.example.com",
        "AUDIENCE=urn:self-service-portal-api",
    ]


def test_generate_env_overwrites_previous_files(setup_config, tmp_path):
    (tmp_path / "client.env").write_text("STALE=1\n", encoding="utf-8")

    written = generate_env(_bundle(), setup_config)

    assert written["client.env"] == tmp_path / "client.env"
    assert "STALE" not in (tmp_path / "client.env").read_text(encoding="utf-8")
    assert (tmp_path / "server.env").read_text(encoding="utf-8").endswith("AUDIENCE=urn:self-service-portal-api\n")


def test_missing_backend_renders_empty_values(setup_config, audit_logger, audit_store):
    generate_env(_bundle(backend=None), setup_config, audit_logger)

    server_env = (setup_config.output_dir / "server.env").read_text(encoding="utf-8")
    assert "NON_INTERACTIVE_CLIENT_ID=\n" in server_env
    missing = audit_store.named("artefact_missing")
    assert missing[0].extra["keys"] == ["NON_INTERACTIVE_CLIENT_ID", "NON_INTERACTIVE_CLIENT_SECRET"]
