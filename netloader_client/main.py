from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Union

from netloader_client.config import load_config
from netloader_client.core import DeploySession, SessionState
from netloader_client.features import ArtifactDescriptor, DeviceDiscovery, LaunchCommand, TransferSession
from netloader_client.features.transfer import ProgressObserver
from netloader_shared.protocol import DeviceAnnouncement, DiscoveryTimeout, ProtocolError

logger = logging.getLogger(__name__)

OutputHandler = Callable[[str], None]


@dataclass
class DeployResult:
    device: DeviceAnnouncement
    bytes_sent: int
    started: bool
    relayed_lines: int
    state: SessionState


async def resolve_device(config: Dict[str, Any]) -> DeviceAnnouncement:
    """Pick the target: the configured host, else the first discovery responder."""
    if config["target_host"]:
        return DeviceAnnouncement.direct(config["target_host"], int(config["device_port"]))
    discovery = DeviceDiscovery(config)
    retries = int(config["discovery_retries"])
    for attempt in range(1, retries + 1):
        devices = await discovery.discover()
        if devices:
            if len(devices) > 1:
                logger.info("Several devices answered, using %s", devices[0])
            return devices[0]
        logger.debug("Discovery attempt %s of %s found no device", attempt, retries)
    raise DiscoveryTimeout(f"No device answered {retries} discovery round(s)")


async def deploy(
    artifact_path: Union[str, Path],
    argv: Sequence[str],
    config: Dict[str, Any],
    device: Optional[DeviceAnnouncement] = None,
    on_progress: Optional[ProgressObserver] = None,
    on_output: Optional[OutputHandler] = None,
) -> DeployResult:
    """Run the whole pipeline: discovery, connect, transfer, launch, relay."""
    artifact = ArtifactDescriptor.from_path(artifact_path, argv)
    device = device or await resolve_device(config)
    relayed = 0
    async with DeploySession(device, config) as session:
        await session.connect()
        await TransferSession(session, artifact, on_progress=on_progress).run()
        launcher = LaunchCommand(session)
        result = await launcher.launch()
        if result.relay and config["relay_output"]:
            async for line in launcher.relay():
                relayed += 1
                if on_output:
                    on_output(line)
    return DeployResult(
        device=device,
        bytes_sent=session.bytes_sent,
        started=result.started,
        relayed_lines=relayed,
        state=session.state,
    )


def _print_progress(sent: int, total: int) -> None:
    percent = sent * 100.0 / total if total else 100.0
    sys.stderr.write(f"\r{sent}/{total} bytes ({percent:.2f}%)")
    if sent >= total:
        sys.stderr.write("\n")
    sys.stderr.flush()


async def run_client(args: Optional[Sequence[str]] = None) -> int:
    args = list(sys.argv[1:] if args is None else args)
    config = load_config()
    logging.basicConfig(level=config["log_level"])
    if not args:
        sys.stderr.write("usage: python -m netloader_client.main ARTIFACT [ARGS...]\n")
        return 2
    artifact_path, argv = args[0], args[1:]
    try:
        result = await deploy(
            artifact_path,
            [Path(artifact_path).name, *argv],
            config,
            on_progress=_print_progress,
            on_output=print,
        )
    except ProtocolError as exc:
        logger.error("Deployment failed: %s", exc)
        if not exc.retry_safe:
            logger.error("The device may still be running the artifact")
        return 1
    except FileNotFoundError as exc:
        logger.error("Artifact not found: %s", exc)
        return 1
    logger.info("Deployed %s bytes to %s", result.bytes_sent, result.device)
    return 0


def main() -> None:
    sys.exit(asyncio.run(run_client()))


if __name__ == "__main__":
    main()
