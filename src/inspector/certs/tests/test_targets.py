"""
测试 targets.py 模块：设备匹配的判定与并发拉取。
"""

import asyncio

import pytest

from src.inspector.certs.errors import DeviceResolutionError
from src.inspector.certs.schemas import ClientOS
from src.inspector.certs.targets import (
    DeviceTargetResolver,
    MatchOutcome,
    select_matching_device,
)
from src.inspector.certs.tests.fakes import SAMPLE_CSR, FakeAndroidTransport, FakeIOSTransport
from src.inspector.common.process import CommandError

APP = "com.example.app"
ANDROID_DIR = "/data/data/com.example.app/files/sonar"
IOS_DEVICE_DIR = "/private/var/mobile/Containers/Data/Application/4B1C-UUID/Documents/sonar/"
SIMULATOR_DIR = (
    "/Users/me/Library/Developer/CoreSimulator/Devices/SIM-UDID-1/data/Containers/Data/"
    "Application/ABCD/Documents/sonar/"
)
OTHER_CSR = SAMPLE_CSR.replace("MIICij", "MIIXXX")


def test_select_single_match():
    outcomes = [
        MatchOutcome(id="a", is_match=False, found_csr=OTHER_CSR),
        MatchOutcome(id="b", is_match=True, found_csr=SAMPLE_CSR),
    ]
    assert select_matching_device(APP, SAMPLE_CSR, outcomes) == "b"


def test_select_multiple_matches_takes_first():
    outcomes = [
        MatchOutcome(id="a", is_match=True, found_csr=SAMPLE_CSR),
        MatchOutcome(id="b", is_match=True, found_csr=SAMPLE_CSR),
    ]
    assert select_matching_device(APP, SAMPLE_CSR, outcomes) == "a"


def test_select_no_match():
    outcomes = [MatchOutcome(id="a", is_match=False, found_csr=OTHER_CSR)]
    with pytest.raises(DeviceResolutionError, match="No matching device found for app: com.example.app"):
        select_matching_device(APP, SAMPLE_CSR, outcomes)


def test_select_no_match_reraises_first_device_error():
    first = CommandError(["adb"], 1, "device offline")
    second = CommandError(["adb"], 1, "permission denied")
    outcomes = [
        MatchOutcome(id="a", is_match=False, found_csr=OTHER_CSR),
        MatchOutcome(id="b", is_match=False, error=first),
        MatchOutcome(id="c", is_match=False, error=second),
    ]
    with pytest.raises(CommandError) as ei:
        select_matching_device(APP, SAMPLE_CSR, outcomes)
    assert ei.value is first


def test_select_match_wins_over_errors():
    outcomes = [
        MatchOutcome(id="a", is_match=False, error=CommandError(["adb"], 1, "offline")),
        MatchOutcome(id="b", is_match=True, found_csr=SAMPLE_CSR),
    ]
    assert select_matching_device(APP, SAMPLE_CSR, outcomes) == "b"


@pytest.mark.asyncio
async def test_android_no_devices():
    resolver = DeviceTargetResolver(FakeAndroidTransport([]), FakeIOSTransport())
    with pytest.raises(DeviceResolutionError, match="No Android devices found"):
        await resolver.resolve(ClientOS.ANDROID, APP, ANDROID_DIR, SAMPLE_CSR)


@pytest.mark.asyncio
async def test_android_single_match_and_pull_path():
    android = FakeAndroidTransport(["emulator-5554"], {"emulator-5554": SAMPLE_CSR})
    resolver = DeviceTargetResolver(android, FakeIOSTransport())

    assert await resolver.resolve(ClientOS.ANDROID, APP, ANDROID_DIR, SAMPLE_CSR) == "emulator-5554"
    assert android.pulls == [("emulator-5554", APP, ANDROID_DIR + "/app.csr")]


@pytest.mark.asyncio
async def test_android_match_ignores_line_endings():
    windows_csr = SAMPLE_CSR.replace("\n", "\r\n") + "\r\n"
    android = FakeAndroidTransport(["a", "b"], {"a": OTHER_CSR, "b": windows_csr})
    resolver = DeviceTargetResolver(android, FakeIOSTransport())

    assert await resolver.resolve(ClientOS.ANDROID, APP, ANDROID_DIR, SAMPLE_CSR) == "b"


@pytest.mark.asyncio
async def test_android_two_matches_takes_first():
    android = FakeAndroidTransport(["a", "b"], {"a": SAMPLE_CSR, "b": SAMPLE_CSR})
    resolver = DeviceTargetResolver(android, FakeIOSTransport())

    assert await resolver.resolve(ClientOS.ANDROID, APP, ANDROID_DIR, SAMPLE_CSR) == "a"


@pytest.mark.asyncio
async def test_android_device_error_does_not_hide_match():
    android = FakeAndroidTransport(["broken", "good"], {"good": SAMPLE_CSR})
    resolver = DeviceTargetResolver(android, FakeIOSTransport())

    assert await resolver.resolve(ClientOS.ANDROID, APP, ANDROID_DIR, SAMPLE_CSR) == "good"
    assert len(android.pulls) == 2


@pytest.mark.asyncio
async def test_android_only_errors_surface_device_error():
    android = FakeAndroidTransport(["broken"])
    resolver = DeviceTargetResolver(android, FakeIOSTransport())

    with pytest.raises(CommandError, match="No such file"):
        await resolver.resolve(ClientOS.ANDROID, APP, ANDROID_DIR, SAMPLE_CSR)


@pytest.mark.asyncio
async def test_android_no_match():
    android = FakeAndroidTransport(["a"], {"a": OTHER_CSR})
    resolver = DeviceTargetResolver(android, FakeIOSTransport())

    with pytest.raises(DeviceResolutionError, match="No matching device found"):
        await resolver.resolve(ClientOS.ANDROID, APP, ANDROID_DIR, SAMPLE_CSR)


@pytest.mark.asyncio
async def test_android_pulls_run_concurrently():
    """两台设备的拉取必须同时进行：任一拉取都要等另一台开始后才能完成。"""
    started = {"a": asyncio.Event(), "b": asyncio.Event()}

    class BlockingAndroid(FakeAndroidTransport):
        async def pull(self, device_id, app_id, remote_path):
            started[device_id].set()
            other = "b" if device_id == "a" else "a"
            await started[other].wait()
            return await super().pull(device_id, app_id, remote_path)

    android = BlockingAndroid(["a", "b"], {"a": OTHER_CSR, "b": SAMPLE_CSR})
    resolver = DeviceTargetResolver(android, FakeIOSTransport())

    result = await asyncio.wait_for(
        resolver.resolve(ClientOS.ANDROID, APP, ANDROID_DIR, SAMPLE_CSR), timeout=5
    )
    assert result == "b"


@pytest.mark.asyncio
async def test_ios_simulator_id_from_path():
    ios = FakeIOSTransport(["device-1"])
    resolver = DeviceTargetResolver(FakeAndroidTransport(), ios)

    assert await resolver.resolve(ClientOS.IOS, APP, SIMULATOR_DIR, SAMPLE_CSR) == "SIM-UDID-1"
    assert ios.call_count == 0


@pytest.mark.asyncio
async def test_ios_no_devices():
    resolver = DeviceTargetResolver(FakeAndroidTransport(), FakeIOSTransport([]))
    with pytest.raises(DeviceResolutionError, match="No iOS devices found"):
        await resolver.resolve(ClientOS.IOS, APP, IOS_DEVICE_DIR, SAMPLE_CSR)


@pytest.mark.asyncio
async def test_ios_device_match_uses_container_relative_path():
    ios = FakeIOSTransport(["dev-a", "dev-b"], {"dev-a": OTHER_CSR, "dev-b": SAMPLE_CSR + "\r\n"})
    resolver = DeviceTargetResolver(FakeAndroidTransport(), ios)

    assert await resolver.resolve(ClientOS.IOS, APP, IOS_DEVICE_DIR, SAMPLE_CSR) == "dev-b"
    assert ("dev-a", "Documents/sonar/app.csr", APP) in ios.pulls


@pytest.mark.asyncio
async def test_ios_failed_pull_is_reported():
    # 拉取命令成功但没有生成文件
    ios = FakeIOSTransport(["dev-a"], {})
    resolver = DeviceTargetResolver(FakeAndroidTransport(), ios)

    with pytest.raises(DeviceResolutionError, match="Failed to pull CSR from device"):
        await resolver.resolve(ClientOS.IOS, APP, IOS_DEVICE_DIR, SAMPLE_CSR)


@pytest.mark.asyncio
async def test_ios_path_outside_app_container():
    ios = FakeIOSTransport(["dev-a"], {"dev-a": SAMPLE_CSR})
    resolver = DeviceTargetResolver(FakeAndroidTransport(), ios)

    with pytest.raises(DeviceResolutionError, match="Path didn't match expected pattern"):
        await resolver.resolve(ClientOS.IOS, APP, "/tmp/not-a-container/", SAMPLE_CSR)
    assert ios.pulls == []


@pytest.mark.asyncio
async def test_desktop_targets():
    android = FakeAndroidTransport(["a"])
    ios = FakeIOSTransport(["b"])
    resolver = DeviceTargetResolver(android, ios)

    assert await resolver.resolve(ClientOS.MACOS, APP, "/Users/me/app/", SAMPLE_CSR) == ""
    assert await resolver.resolve(ClientOS.WINDOWS, APP, "C:\\app\\", SAMPLE_CSR) == "unknown"
    assert android.call_count == 0 and ios.call_count == 0
