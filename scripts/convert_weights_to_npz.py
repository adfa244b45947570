#!/usr/bin/env python3
"""
Convert raw binary weight files to a single NPZ archive.

The pretrained weights were exported as eight raw float32 files, one per
matrix. This script bundles them into one compressed .npz archive that the
API server accepts as an upload.

Usage:
    python scripts/convert_weights_to_npz.py [weights_dir]

The directory (default: ./data) must contain w1..w4 and b1..b4 files, with or
without a .bin extension. The archive is written to <weights_dir>/weights.npz.

The script will:
1. Load and shape-check the eight binary files
2. Save them as weights.npz in the same directory
3. Verify the archive reproduces every matrix exactly
"""

import os
import sys
from typing import List

import numpy as np

# Allow running from a source checkout without installing the package
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), '..'))

from mlpnet.errors import MatrixError
from mlpnet.mlp_network import MLP_SIZE, MlpNetwork
from mlpnet.weights_loader import convert_binary_to_npz, load_npz


def find_weight_files(data_dir: str, prefix: str) -> List[str]:
    """
    Locate the four files named <prefix>1..<prefix>4 in ``data_dir``.

    Raises:
        FileNotFoundError: If any file is missing
    """
    paths = []
    for i in range(1, MLP_SIZE + 1):
        for name in (f'{prefix}{i}', f'{prefix}{i}.bin'):
            path = os.path.join(data_dir, name)
            if os.path.exists(path):
                paths.append(path)
                break
        else:
            raise FileNotFoundError(f"Missing {prefix}{i} in {data_dir}")
    return paths


def verify_conversion(npz_path: str, original: MlpNetwork) -> bool:
    """
    Verify that the NPZ archive contains the same matrices as the original.

    Returns:
        True if every weight and bias matrix is identical
    """
    print("\n🔍 Verifying conversion...")
    converted = load_npz(npz_path)

    for i, (a, b) in enumerate(zip(original.weights, converted.weights)):
        assert np.array_equal(a.to_numpy(), b.to_numpy()), \
            f"Weights of layer {i + 1} don't match!"
    for i, (a, b) in enumerate(zip(original.biases, converted.biases)):
        assert np.array_equal(a.to_numpy(), b.to_numpy()), \
            f"Biases of layer {i + 1} don't match!"

    print("✅ Verification passed! Matrices are identical.")
    return True


def main():
    """Main conversion function."""
    print("=" * 60)
    print("Weights Format Converter")
    print("Raw float32 files → NPZ archive")
    print("=" * 60)

    script_dir = os.path.dirname(os.path.abspath(__file__))
    default_dir = os.path.join(os.path.dirname(script_dir), 'data')
    data_dir = sys.argv[1] if len(sys.argv) > 1 else default_dir
    npz_path = os.path.join(data_dir, 'weights.npz')

    try:
        weight_paths = find_weight_files(data_dir, 'w')
        bias_paths = find_weight_files(data_dir, 'b')
    except FileNotFoundError as e:
        print(f"❌ Error: {e}")
        sys.exit(1)

    if os.path.exists(npz_path):
        response = input(f"\n⚠️  {npz_path} already exists. Overwrite? (y/N): ")
        if response.lower() != 'y':
            print("❌ Conversion cancelled.")
            sys.exit(0)

    try:
        print(f"\n📂 Loading binary weights from: {data_dir}")
        network = convert_binary_to_npz(weight_paths, bias_paths, npz_path)
        print(f"✅ Loaded network with layer sizes {network.sizes}")

        npz_size = os.path.getsize(npz_path) / 1024
        print(f"💾 Saved {npz_path} ({npz_size:.1f} KB)")

        verify_conversion(npz_path, network)

        print("\n" + "=" * 60)
        print("✅ CONVERSION COMPLETE!")
        print("=" * 60)
        print(f"\nUpload with: curl -F file=@{npz_path} http://localhost:8000/api/networks")

    except (MatrixError, OSError, ValueError, AssertionError) as e:
        print(f"\n❌ Error during conversion: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
