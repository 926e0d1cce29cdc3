"""Generate the RSA key pair used to sign portal session tokens (RS256).

Usage:
    python -m gtreinamento.auth.generate_keys [output_dir]

Without an output directory the PEM blocks are printed so they can be pasted
into ``.env`` as JWT_PRIVATE_KEY / JWT_PUBLIC_KEY. With a directory, the files
``jwt_private.pem`` and ``jwt_public.pem`` are written there and the settings
may point at their paths instead.
"""

import os
import sys

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def build_key_pair() -> tuple[str, str]:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = (
        private_key.public_key()
        .public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )
    return private_pem, public_pem


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    private_pem, public_pem = build_key_pair()

    if not args:
        print("# JWT_PRIVATE_KEY")
        print(private_pem)
        print("# JWT_PUBLIC_KEY")
        print(public_pem)
        return

    out_dir = args[0]
    os.makedirs(out_dir, exist_ok=True)
    private_path = os.path.join(out_dir, "jwt_private.pem")
    with open(private_path, "w") as f:
        f.write(private_pem)
    os.chmod(private_path, 0o600)
    with open(os.path.join(out_dir, "jwt_public.pem"), "w") as f:
        f.write(public_pem)
    print(f"Chaves gravadas em {out_dir}")


if __name__ == "__main__":
    main()
