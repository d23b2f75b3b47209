"""HTTP probe of the application endpoint."""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import requests

from common import ActionResult
from config import RunContext
from readiness import ReadinessCheck, wait_until

logger = logging.getLogger(__name__)


def probe_url(url: str, host_header: Optional[str] = None, timeout: int = 10) -> tuple[bool, str]:
    """GET url once.

    Any response below 500 means the load balancer is routing to the
    workload; a 404 from the ingress is still an answer.

    Returns:
        (answered, message) tuple
    """
    headers = {'Host': host_header} if host_header else {}
    try:
        resp = requests.get(url, headers=headers, timeout=timeout, allow_redirects=False)
    except requests.exceptions.ConnectionError as e:
        return False, f"Cannot connect to {url}: {e}"
    except requests.exceptions.Timeout:
        return False, f"Timeout connecting to {url}"
    except requests.exceptions.RequestException as e:
        return False, f"Error probing {url}: {e}"

    if resp.status_code >= 500:
        return False, f"{url} answered {resp.status_code}"
    return True, f"{url} answered {resp.status_code}"


@dataclass
class ProbeEndpointAction:
    """Poll the application URL until it answers.

    The hostname comes from the wait-for-endpoint stage; new ALB DNS names
    often take a few minutes to resolve.
    """
    name: str
    host_key: str = 'app_hostname'
    path: str = '/'
    timeout: int = 300
    interval: int = 10
    request_timeout: int = 10

    def run(self, ctx: RunContext, context: dict) -> ActionResult:
        """HTTP GET against the discovered hostname."""
        start = time.time()

        hostname = context.get(self.host_key)
        if not hostname:
            return ActionResult(
                success=False,
                message=f"No {self.host_key} in context (endpoint not discovered)",
                duration=time.time() - start,
                remediation=[f"kubectl get ingress {ctx.ingress_name} -n {ctx.namespace}"],
            )

        url = f'http://{hostname}{self.path}'
        last = {'message': ''}

        def _poll():
            answered, message = probe_url(url, ctx.app_host, self.request_timeout)
            last['message'] = message
            if not answered:
                logger.debug(f"[{self.name}] {message}")
                return None
            return message

        outcome = wait_until(ReadinessCheck(
            target=url,
            poll=_poll,
            interval=self.interval,
            deadline=self.timeout,
        ))

        if not outcome.ready:
            return ActionResult(
                success=False,
                message=f"{url} not answering after {outcome.elapsed:.0f}s: {last['message']}",
                duration=time.time() - start,
                timed_out=True,
                remediation=[f"curl -sv -H 'Host: {ctx.app_host}' {url}"],
            )

        return ActionResult(
            success=True,
            message=outcome.value,
            duration=time.time() - start,
        )
