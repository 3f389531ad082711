from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .audit import JsonAuditLogger
from .config import SetupConfig
from .provisioner import API_IDENTIFIER, ArtefactBundle

CLIENT_ENV_FILE = "client.env"
SERVER_ENV_FILE = "server.env"


def _render(pairs: List[Tuple[str, Optional[str]]]) -> str:
    return "".join(f"{key}={'' if value is None else value}\n" for key, value in pairs)


def client_env_pairs(bundle: ArtefactBundle, config: SetupConfig) -> List[Tuple[str, Optional[str]]]:
    return [
        ("REACT_APP_domain", config.domain),
        ("REACT_APP_clientID", bundle.portal_client_id),
        ("REACT_APP_audience", API_IDENTIFIER),
    ]


def server_env_pairs(bundle: ArtefactBundle, config: SetupConfig) -> List[Tuple[str, Optional[str]]]:
    return [
        ("NON_INTERACTIVE_CLIENT_ID", bundle.backend_client_id),
        ("NON_INTERACTIVE_CLIENT_SECRET", bundle.backend_client_secret),
        ("DOMAIN", config.domain),
        ("AUDIENCE", API_IDENTIFIER),
    ]


def render_client_env(bundle: ArtefactBundle, config: SetupConfig) -> str:
    return _render(client_env_pairs(bundle, config))


def render_server_env(bundle: ArtefactBundle, config: SetupConfig) -> str:
    return _render(server_env_pairs(bundle, config))


def generate_env(
    bundle: ArtefactBundle, config: SetupConfig, audit_logger: Optional[JsonAuditLogger] = None
) -> Dict[str, Path]:
    """Write client.env and server.env into ``config.output_dir``, replacing old files.

    Values the run failed to produce are written empty and reported.
    """
    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    files = {
        CLIENT_ENV_FILE: client_env_pairs(bundle, config),
        SERVER_ENV_FILE: server_env_pairs(bundle, config),
    }
    written: Dict[str, Path] = {}
    for filename, pairs in files.items():
        path = output_dir / filename
        path.write_text(_render(pairs), encoding="utf-8")
        written[filename] = path
        if audit_logger:
            empty = [key for key, value in pairs if value is None]
            if empty:
                audit_logger.warning(
                    "artefact_missing", domain=config.domain, file=filename, keys=empty
                )
            audit_logger.info("env_file_written", domain=config.domain, path=str(path))
    return written
