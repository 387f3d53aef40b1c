from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from pydenylist import (
    DefaultMultisigProvider,
    Descriptor,
    Filter,
    Manifest,
    PublicKey,
    PublicKeyManifest,
    assess_filter,
    rebuild_and_verify,
)


def new_key():
    sk = Ed25519PrivateKey.generate()
    return sk.private_bytes_raw(), PublicKey.from_ed25519(sk.public_key().public_bytes_raw())


def main():
    crypto = DefaultMultisigProvider()

    # Three signers, any two of which may publish a filter
    signers = [new_key() for _ in range(3)]
    key_manifest = PublicKeyManifest(public_keys=tuple(pk for _, pk in signers), required=2)

    # Two fully denied keys and one denied relationship
    a, b, c, d = (new_key()[1] for _ in range(4))
    descriptor = Descriptor.from_rows([[str(a)], [str(b), "", "stolen"], [str(c), str(d)]])

    # Builder: signing data and an empty manifest
    unsigned = Filter.from_descriptor(1, descriptor)
    manifest = Manifest.for_filter(unsigned, key_manifest)

    # Each signer independently signs the content hash
    for sk, pk in signers[:2]:
        manifest = manifest.add_signature(pk, crypto.sign(sk, unsigned.hash()))

    # Anyone holding the descriptor can rebuild, combine and verify
    signed = rebuild_and_verify(descriptor, manifest, key_manifest)
    print("address:", key_manifest.public_key())
    print("state:", assess_filter(signed, manifest, key_manifest).name)

    received = Filter.from_bytes(signed.to_bytes())
    assert received.verify(key_manifest)
    assert received.contains(a) and received.contains_edge(d, c)
    print("denied key present:", received.contains(a))


if __name__ == "__main__":
    main()
