import json
import os
import subprocess
from pathlib import Path

def run(cmd):
    try:
        out = subprocess.check_output(cmd, stderr=subprocess.STDOUT).decode("utf-8", errors="ignore")
        return 0, out
    except (OSError, subprocess.CalledProcessError) as e:
        output = getattr(e, "output", None) or str(e).encode()
        return getattr(e, "returncode", 127), output.decode("utf-8", errors="ignore")

def print_first_line(label, text):
    first = text.splitlines()[0] if text.strip() else "(no output)"
    print(f"{label}: {first}")

EXIFTOOL = os.getenv("ASSETMETA_EXIFTOOL_PATH", "exiftool")

# Check exiftool
code, out = run([EXIFTOOL, "-ver"])
print_first_line("exiftool", out)

sample = os.getenv("SAMPLE_MEDIA")
if sample and Path(sample).exists():
    print(f"\nInspecting sample: {sample}")
    # Same flags the extraction pipeline uses
    code2, out2 = run([EXIFTOOL, "-json", "-struct", "-n", "-api", "largefilesupport=1", sample])
    if code2 == 0:
        tags = json.loads(out2)[0]
        for key in ("Make", "Model", "DateTimeOriginal", "GPSLatitude", "GPSLongitude", "MotionPhoto", "MicroVideoOffset"):
            print(f"  {key}: {tags.get(key)}")
    else:
        print(out2[:1000])
else:
    print("\nNo SAMPLE_MEDIA provided or file not found. Set SAMPLE_MEDIA in .env to a valid media file path.")
