#!/usr/bin/env python3
"""List audio output devices usable for playback (--device INDEX)"""


def output_devices() -> list[dict]:
    # PortAudio is loaded lazily so headless analysis works without it
    import sounddevice as sd

    devices = []
    for i, d in enumerate(sd.query_devices()):
        if d['max_output_channels'] <= 0:
            continue
        devices.append({
            'index': i,
            'name': d['name'],
            'channels': d['max_output_channels'],
            'sample_rate': d['default_samplerate'],
        })
    return devices


def print_output_devices() -> None:
    print("Available Output Devices:\n")
    for d in output_devices():
        print(f"[{d['index']}] {d['name']}")
        print(f"    Output: {d['channels']} channels")
        print(f"    Default SR: {d['sample_rate']} Hz")
        print()


if __name__ == "__main__":
    print_output_devices()
