"""CLI entry point for usbscope."""

import argparse
import logging
import sys
import threading
from pathlib import Path

from usbscope.errors import ScopeError
from usbscope.options import (
    Channel,
    ChannelOptions,
    Coupling,
    EdgeTriggerOptions,
    Timebase,
    TriggerSlope,
    TriggerSource,
    VoltageRange,
)
from usbscope.sample_frame import SampleFrame
from usbscope.session import Session
from usbscope.transport import USB_TIMEOUT_MS, UsbTransport

logger = logging.getLogger(__name__)

# Default trigger level in ADC counts
DEFAULT_TRIGGER_LEVEL = 0
DEFAULT_VOLTAGE_RANGE = "V1"
DEFAULT_TIMEBASE = "VENDOR_DEFAULT"
# Print a summary line every N frames
REPORT_EVERY = 10


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Stream waveforms from a USB bulk-transfer oscilloscope"
    )
    parser.add_argument("firmware", type=Path, help="Path to the FPGA firmware image")
    parser.add_argument(
        "--force-upload",
        action="store_true",
        help="Upload the firmware even if the device reports one loaded",
    )
    parser.add_argument(
        "--channel",
        choices=[c.name for c in Channel],
        default=Channel.CH1.name,
        help="Input channel (default: CH1)",
    )
    parser.add_argument(
        "--voltage",
        choices=[v.name for v in VoltageRange],
        default=DEFAULT_VOLTAGE_RANGE,
        help=f"Voltage range per division (default: {DEFAULT_VOLTAGE_RANGE})",
    )
    parser.add_argument(
        "--coupling",
        choices=[c.name for c in Coupling],
        default=Coupling.DC.name,
        help="Input coupling (default: DC)",
    )
    parser.add_argument(
        "--timebase",
        choices=[t.name for t in Timebase],
        default=DEFAULT_TIMEBASE,
        help=f"Sampling-rate code (default: {DEFAULT_TIMEBASE})",
    )
    parser.add_argument(
        "--trigger-level",
        type=int,
        default=DEFAULT_TRIGGER_LEVEL,
        help=f"Trigger level in ADC counts (default: {DEFAULT_TRIGGER_LEVEL})",
    )
    parser.add_argument(
        "--slope",
        choices=[s.name for s in TriggerSlope],
        default=TriggerSlope.RISING.name,
        help="Trigger slope (default: RISING)",
    )
    parser.add_argument(
        "--cycles",
        type=int,
        default=None,
        help="Stop after this many frames (default: run until Ctrl+C)",
    )
    parser.add_argument(
        "--timeout-ms",
        type=int,
        default=USB_TIMEOUT_MS,
        help=f"USB transfer timeout in milliseconds (default: {USB_TIMEOUT_MS})",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="More log output"
    )
    return parser.parse_args(argv)


def _run(session: Session, args: argparse.Namespace, stop: threading.Event) -> None:
    """Bring the device up and stream frames until stopped."""
    session.open()
    print("Connected to oscilloscope")

    session.load_calibration()
    print(f"Device {session.firmware_version} serial {session.serial_number}")

    image = args.firmware.read_bytes()
    frames = session.load_firmware(image, force=args.force_upload)
    if frames:
        print(f"Uploaded firmware ({len(image)} bytes, {frames} frames)")

    channel = Channel[args.channel]
    source = TriggerSource(int(channel))
    session.configure(
        channels=[
            ChannelOptions(
                channel=channel,
                enabled=True,
                voltage_range=VoltageRange[args.voltage],
                coupling=Coupling[args.coupling],
            )
        ],
        timebase=Timebase[args.timebase],
        trigger=EdgeTriggerOptions(
            source=source,
            slope=TriggerSlope[args.slope],
            trigger_level=args.trigger_level,
        ),
    )
    print("Configured oscilloscope")
    print("Press Ctrl+C to exit\n")

    count = 0

    def on_sample(voltages: list[float]) -> None:
        nonlocal count
        count += 1
        if count % REPORT_EVERY == 0:
            frame = SampleFrame(channel=int(channel), voltages=voltages)
            print(
                f"Frame {count}: {len(voltages)} samples, "
                f"min {frame.min_v:.3f} V, max {frame.max_v:.3f} V, "
                f"mean {frame.mean_v:.3f} V"
            )

    session.sample_continuously(on_sample, stop.is_set, args.cycles)
    print(f"Captured {count} frames")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for usbscope CLI."""
    args = _parse_args(argv)
    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    stop = threading.Event()
    errors: list[ScopeError] = []
    session = Session(UsbTransport(timeout_ms=args.timeout_ms))

    def worker() -> None:
        try:
            _run(session, args, stop)
        except ScopeError as e:
            errors.append(e)
        except OSError as e:
            errors.append(ScopeError(f"Cannot read firmware image: {e}"))
        except Exception as e:
            logger.exception("Acquisition thread failed")
            errors.append(ScopeError(f"Unexpected error: {e}"))

    # Acquisition runs on its own thread so Ctrl+C only ends it between cycles
    thread = threading.Thread(target=worker, name="usbscope-acquisition")
    thread.start()
    try:
        while thread.is_alive():
            thread.join(timeout=0.2)
    except KeyboardInterrupt:
        print("\nStopping...")
        stop.set()
        thread.join()
    finally:
        try:
            session.close()
        except ScopeError as e:
            errors.append(e)
        print("Disconnected")

    if errors:
        print(f"Error: {errors[0]}")
        sys.exit(1)


if __name__ == "__main__":
    main()
