import asyncio
import re

from loguru import logger

# "rtt min/avg/max/mdev = 10.1/12.3/15.0/1.2 ms" (iputils), "round-trip ..." (BSD/busybox)
_RTT_LINE = re.compile(r"(?:rtt|round-trip)[^=]*=\s*([\d.]+)/([\d.]+)/([\d.]+)")
_RECEIVED = re.compile(r"(\d+)\s+(?:packets\s+)?received")


class LatencyProbeError(RuntimeError):
    pass


def parse_ping_output(output: str) -> float:
    """Extract the average round-trip time (ms) from ping's summary.

    Raises:
        LatencyProbeError: if no reply came back or the summary line is missing.
    """
    received = _RECEIVED.search(output)
    if received is None or int(received.group(1)) == 0:
        raise LatencyProbeError("No ping replies received")

    rtt = _RTT_LINE.search(output)
    if rtt is None:
        raise LatencyProbeError("No round-trip summary in ping output")
    return float(rtt.group(2))


async def measure_latency(host: str, min_replies: int = 4, timeout: float = 30.0) -> float:
    """Send min_replies echo requests and return the average round-trip time in ms."""
    try:
        proc = await asyncio.create_subprocess_exec(
            "ping", "-c", str(min_replies), "-W", "3", host,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise LatencyProbeError("ping not found") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        raise LatencyProbeError(f"ping {host} timed out after {timeout}s") from e

    if proc.returncode != 0:
        raise LatencyProbeError(
            f"ping {host} failed ({proc.returncode}): {stderr.decode().strip()}"
        )

    avg = parse_ping_output(stdout.decode())
    logger.debug("Ping {}: avg {}ms over {} requests", host, avg, min_replies)
    return avg
