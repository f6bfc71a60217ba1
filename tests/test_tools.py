#!/usr/bin/env python3
"""Argument vectors and output parsing of the external tool adapters."""

from pathlib import Path

import pytest

from fakes import RecordingShell

from acpied.exceptions import BootUpdateError, ToolError
from acpied.tools import (
    AcpidumpSource,
    AcpixtractSplitter,
    CpioArchiver,
    GrubbyBootConfig,
    IaslDisassembler,
)
from acpied.tools.grubby import parse_grubby_info

GRUBBY_INFO = b"""index=0
kernel="/boot/vmlinuz-6.5.6-300.fc39.x86_64"
args="ro rhgb quiet"
root="UUID=1234"
initrd="/boot/initramfs-6.5.6-300.fc39.x86_64.img $tuned_initrd"
title="Fedora Linux (6.5.6-300.fc39.x86_64) 39"
id="abc-6.5.6-300.fc39.x86_64"
index=1
kernel="/boot/vmlinuz-0-rescue"
initrd="/boot/initramfs-0-rescue.img"
"""


class TestAcpica:
    def test_acpidump_argv(self, tmp_path):
        shell = RecordingShell()
        out = tmp_path / "acpidump.out"

        assert AcpidumpSource(shell).dump(out) == out
        assert shell.calls[0]["args"] == ["acpidump", "-o", str(out)]

    def test_acpixtract_runs_in_target_dir(self, tmp_path):
        target = tmp_path / "tables"

        def produce(argv, cwd):
            for name in ("dsdt.dat", "ssdt1.dat", "notes.txt"):
                (Path(cwd) / name).write_bytes(b"x")

        shell = RecordingShell(side_effect=produce)
        blob = tmp_path / "acpidump.out"
        tables = AcpixtractSplitter(shell).split(blob, target)

        assert sorted(tables) == ["dsdt", "ssdt1"]
        assert shell.calls[0]["args"] == ["acpixtract", "-a", str(blob.resolve())]
        assert Path(shell.calls[0]["cwd"]) == target

    def test_iasl_disassemble_and_assemble(self, tmp_path):
        def produce(argv, cwd):
            prefix = Path(argv[2])
            suffix = ".dsl" if "-d" in argv else ".aml"
            prefix.with_suffix(suffix).write_bytes(b"out")

        shell = RecordingShell(side_effect=produce)
        iasl = IaslDisassembler(shell)

        dsl = iasl.disassemble(tmp_path / "dsdt.dat", tmp_path)
        aml = iasl.assemble(dsl, tmp_path)

        assert dsl == tmp_path / "dsdt.dsl"
        assert aml == tmp_path / "dsdt.aml"
        assert shell.calls[0]["args"] == [
            "iasl", "-p", str(tmp_path / "dsdt"), "-d", str(tmp_path / "dsdt.dat")
        ]
        assert shell.calls[1]["args"] == ["iasl", "-p", str(tmp_path / "dsdt"), str(dsl)]

    def test_iasl_without_output_is_error(self, tmp_path):
        with pytest.raises(ToolError) as ei:
            IaslDisassembler(RecordingShell()).assemble(tmp_path / "dsdt.dsl", tmp_path)
        assert "produced no output" in str(ei.value)


class TestCpio:
    def test_list_entries_parents_first(self, tmp_path):
        acpi = tmp_path / "kernel" / "firmware" / "acpi"
        acpi.mkdir(parents=True)
        (acpi / "SSDT1.aml").write_bytes(b"1")
        (acpi / "DSDT.aml").write_bytes(b"2")

        assert CpioArchiver.list_entries(tmp_path) == [
            "kernel",
            "kernel/firmware",
            "kernel/firmware/acpi",
            "kernel/firmware/acpi/DSDT.aml",
            "kernel/firmware/acpi/SSDT1.aml",
        ]

    def test_archive_feeds_listing_on_stdin(self, tmp_path):
        (tmp_path / "kernel").mkdir()
        shell = RecordingShell(outputs={"cpio": b"070701..."})

        assert CpioArchiver(shell).archive(tmp_path) == b"070701..."
        call = shell.calls[0]
        assert call["args"] == [
            "cpio", "--create", "--format=newc", "--owner=0:0", "--quiet"
        ]
        assert call["cwd"] == tmp_path
        assert call["input_data"] == b"kernel\n"


class TestGrubby:
    def test_parse_first_entry_only(self):
        info = parse_grubby_info(GRUBBY_INFO.decode())
        assert info["kernel"] == "/boot/vmlinuz-6.5.6-300.fc39.x86_64"
        assert info["initrd"] == "/boot/initramfs-6.5.6-300.fc39.x86_64.img $tuned_initrd"
        assert info["args"] == "ro rhgb quiet"

    def test_default_entry_skips_variables(self):
        shell = RecordingShell(
            outputs={
                "--default-kernel": b"/boot/vmlinuz-6.5.6-300.fc39.x86_64\n",
                "--info=": GRUBBY_INFO,
            }
        )
        entry = GrubbyBootConfig(shell).default_entry()

        assert entry.kernel == "/boot/vmlinuz-6.5.6-300.fc39.x86_64"
        assert entry.initrd == Path("/boot/initramfs-6.5.6-300.fc39.x86_64.img")
        assert shell.calls[1]["args"] == [
            "grubby", "--info=/boot/vmlinuz-6.5.6-300.fc39.x86_64"
        ]

    def test_no_default_kernel(self):
        with pytest.raises(BootUpdateError):
            GrubbyBootConfig(RecordingShell()).default_entry()

    def test_no_initrd(self):
        shell = RecordingShell(
            outputs={
                "--default-kernel": b"/boot/vmlinuz\n",
                "--info=": b'index=0\nkernel="/boot/vmlinuz"\n',
            }
        )
        with pytest.raises(BootUpdateError) as ei:
            GrubbyBootConfig(shell).default_entry()
        assert "No initrd" in str(ei.value)

    def test_set_initrd_argv(self):
        shell = RecordingShell()
        GrubbyBootConfig(shell).set_initrd("/boot/vmlinuz", Path("/boot/acpi-override-x.img"))
        assert shell.calls[0]["args"] == [
            "grubby", "--update-kernel=/boot/vmlinuz", "--initrd=/boot/acpi-override-x.img"
        ]
