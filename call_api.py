# call_api.py
import argparse
from pathlib import Path

import requests

API_URL = "http://127.0.0.1:8000/humanoid"

MEDIA_TYPES = {".jpg": "image/jpeg", ".jpeg": "image/jpeg", ".png": "image/png"}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send a photo to the humanoid API and save the result.")
    parser.add_argument("--image", type=Path, required=True, help="Input photo path (JPEG or PNG).")
    parser.add_argument("--url", default=API_URL, help="Endpoint URL.")
    parser.add_argument(
        "--variant",
        choices=("glb", "preview", "json"),
        default="glb",
        help="Which asset the service should return.",
    )
    parser.add_argument("--output", type=Path, help="Where to write the response body.")
    parser.add_argument("--timeout", type=float, default=120.0, help="Request timeout in seconds.")
    return parser.parse_args()


def default_output(variant: str) -> Path:
    suffix = {"glb": ".glb", "preview": ".png", "json": ".json"}[variant]
    return Path.cwd() / f"humanoid{suffix}"


def main() -> None:
    args = parse_args()
    if not args.image.exists():
        raise FileNotFoundError(f"Input image not found: {args.image}")

    media_type = MEDIA_TYPES.get(args.image.suffix.lower(), "image/jpeg")
    with args.image.open("rb") as fh:
        files = {"image": (args.image.name, fh, media_type)}
        response = requests.post(
            args.url,
            files=files,
            params={"variant": args.variant},
            timeout=args.timeout,
        )

    if response.status_code == 200:
        output = args.output or default_output(args.variant)
        output.write_bytes(response.content)
        print(f"Saved {args.variant} to {output}")
    else:
        print(f"Request failed: {response.status_code}")
        print(response.text)


if __name__ == "__main__":
    main()
