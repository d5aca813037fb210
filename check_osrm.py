#!/usr/bin/env python3
"""Check OSRM connectivity and compare a sample table against haversine estimates."""

import sys
from pathlib import Path

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root / "src"))

from tripopt.config import settings
from tripopt.services.geospatial import haversine_meters
from tripopt.services.optimizer.osrm_client import OSRMClient, check_health

SAMPLE_COORDINATES = [
    (52.517037, 13.388860),
    (52.496891, 13.385983),
    (52.520008, 13.404954),
]


def main() -> int:
    print("OSRM connection check")
    if not settings.osrm_base_url:
        print("  [ERROR] TRIPOPT_OSRM_BASE_URL is not configured; haversine estimates will be used")
        return 1
    print(f"  Base URL: {settings.osrm_base_url}")

    if not check_health():
        print("  [ERROR] OSRM service is not responding")
        return 1
    print("  [OK] OSRM service is healthy")

    for profile in ("driving", "cycling", "walking"):
        try:
            table = OSRMClient().table(SAMPLE_COORDINATES, profile=profile)
        except (ConnectionError, ValueError) as exc:
            print(f"  [WARN] {profile}: table request failed ({exc})")
            continue
        road = table["distances"][0][1]
        if road is None:
            print(f"  [WARN] {profile}: sample pair is not routable")
            continue
        straight = haversine_meters(SAMPLE_COORDINATES[0], SAMPLE_COORDINATES[1])
        print(f"  [OK] {profile}: road {road:.0f} m vs straight line {straight:.0f} m")
    return 0


if __name__ == "__main__":
    sys.exit(main())
