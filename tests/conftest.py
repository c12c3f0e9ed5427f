"""測試共用 fixtures。"""

from __future__ import annotations

import pytest

from virtual_shell import ShellConfig, VirtualShell


@pytest.fixture
def shell() -> VirtualShell:
    """建立使用空 volume 的測試用 shell。"""
    return VirtualShell(ShellConfig(environment={'PATH': '/bin:/usr/bin', 'HOME': '/home/guest'}))
