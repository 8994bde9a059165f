"""
Env reconciler: recreate a container with a new environment.
"""

import asyncio
import logging
from typing import Any, Dict

from fleetdock.errors import EnvReconcileError
from fleetdock.reconcile.env import compute_env, format_env_list, parse_env_list
from fleetdock.reconcile.models import EnvReconciliation, ReconcileState
from fleetdock.runtime.endpoint import RuntimeEndpoint
from fleetdock.runtime.fanout import MultiHostClient

logger = logging.getLogger(__name__)


def build_create_config(inspect: Dict[str, Any], env) -> Dict[str, Any]:
    """
    Build a container create body that reproduces an inspected container.

    Image, command, labels and the rest of ``Config`` are kept; ``Env`` is
    replaced. Host configuration and network endpoint settings are carried
    over unchanged.
    """
    config = dict(inspect.get("Config") or {})
    config["Env"] = list(env)
    config["HostConfig"] = inspect.get("HostConfig") or {}
    networks = (inspect.get("NetworkSettings") or {}).get("Networks") or {}
    config["NetworkingConfig"] = {"EndpointsConfig": networks}
    return config


class EnvReconciler:
    """
    Applies a desired environment by stop, remove, create and start.

    This causes downtime and changes the container ID. Each step is a state
    transition on the returned EnvReconciliation.

    Usage:
        reconciler = EnvReconciler(client)
        result = await reconciler.reconcile("local", "web", {"LOG_LEVEL": "debug"})
        print(result.new_container_id)
    """

    def __init__(self, client: MultiHostClient):
        self.client = client

    async def reconcile(
        self,
        host_name: str,
        container_id: str,
        desired_env: Dict[str, str],
    ) -> EnvReconciliation:
        """
        Recreate a container with ``desired_env``.

        Args:
            host_name: Host the container runs on
            container_id: Container ID or name
            desired_env: Full desired environment; missing keys are removed

        Returns:
            Record in state DONE with ``new_container_id`` set

        Raises:
            HostNotFoundError: If the host is not configured
            EnvReconcileError: If any step fails; carries the FAILED record
        """
        endpoint = self.client.get_endpoint(host_name)
        record = EnvReconciliation(host=host_name, container_id=container_id)
        return await asyncio.to_thread(self._run, endpoint, record, dict(desired_env))

    def _run(
        self,
        endpoint: RuntimeEndpoint,
        record: EnvReconciliation,
        desired_env: Dict[str, str],
    ) -> EnvReconciliation:
        step = ReconcileState.CURRENT
        try:
            inspect = endpoint.inspect_container(record.container_id)
            current = parse_env_list((inspect.get("Config") or {}).get("Env") or [])
            record.env = format_env_list(compute_env(current, desired_env))
            record.container_name = (inspect.get("Name") or "").lstrip("/")
            create_config = build_create_config(inspect, record.env)

            logger.warning(
                f"Recreating container {record.container_name or record.container_id} on "
                f"{record.host} to apply {len(record.env)} env variable(s); it will be "
                f"unavailable until the new container starts"
            )

            step = ReconcileState.STOPPING
            record.transition(step)
            endpoint.stop_container(record.container_id)

            step = ReconcileState.REMOVING
            record.transition(step)
            endpoint.remove_container(record.container_id)

            step = ReconcileState.CREATING
            record.transition(step)
            record.new_container_id = endpoint.create_container(
                create_config, name=record.container_name or None
            )

            step = ReconcileState.STARTING
            record.transition(step)
            endpoint.start_container(record.new_container_id)
        except Exception as e:
            record.failed_step = step
            record.error = str(e)
            record.transition(ReconcileState.FAILED)
            logger.error(
                f"Env reconciliation of {record.container_id} on {record.host} failed "
                f"while {step.value}: {e}"
            )
            raise EnvReconcileError(
                f"env reconciliation failed while {step.value}: {e}", reconciliation=record
            ) from e

        record.transition(ReconcileState.DONE)
        logger.info(
            f"Container {record.container_name} on {record.host} recreated: "
            f"{record.container_id[:12]} -> {record.new_container_id[:12]}"
        )
        return record
