"""
Pytest shared fixtures.

The section feed below holds the 12 section instants (China Standard Time)
of 2023-2025, so no test depends on an ephemeris or a data file.
"""

import pytest

from qimen.astro_calendar import SolarTermTable
from qimen.config import EngineConfig

SECTION_FEED = [
    # 2023
    "2023-01-05 23:04:39", "2023-02-04 10:42:21", "2023-03-06 04:36:02",
    "2023-04-05 09:12:42", "2023-05-06 02:18:34", "2023-06-06 06:18:03",
    "2023-07-07 16:30:29", "2023-08-08 02:22:42", "2023-09-08 05:26:32",
    "2023-10-08 21:15:26", "2023-11-08 00:35:33", "2023-12-07 17:32:44",
    # 2024
    "2024-01-06 04:49:09", "2024-02-04 16:26:53", "2024-03-05 10:22:35",
    "2024-04-04 15:02:06", "2024-05-05 08:09:40", "2024-06-05 12:09:49",
    "2024-07-06 22:19:48", "2024-08-07 08:09:02", "2024-09-07 11:11:06",
    "2024-10-08 03:00:16", "2024-11-07 06:19:56", "2024-12-06 23:16:47",
    # 2025
    "2025-01-05 10:32:31", "2025-02-03 22:10:13", "2025-03-05 16:07:02",
    "2025-04-04 20:48:21", "2025-05-05 13:56:57", "2025-06-05 17:56:17",
    "2025-07-07 04:04:43", "2025-08-07 13:51:16", "2025-09-07 16:51:41",
    "2025-10-08 08:41:00", "2025-11-07 12:03:47", "2025-12-07 05:04:20",
]


@pytest.fixture
def section_feed():
    return list(SECTION_FEED)


@pytest.fixture(scope="session")
def term_table():
    return SolarTermTable.from_instants(SECTION_FEED)


@pytest.fixture
def empty_table():
    return SolarTermTable()


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def feed_file(tmp_path):
    path = tmp_path / "jq.txt"
    path.write_text("\n".join(SECTION_FEED) + "\n", encoding="utf-8")
    return path
