import argparse
import logging
import os
import sys

from assetseal_crypto import (
    AssetSealError,
    DEFAULT_KEY_SIZE,
    PayloadCipher,
    decrypt_file as module_decrypt_file,
    encrypt_file as module_encrypt_file,
    from_text,
    imported_private_key,
    protect_file as module_protect_file,
    provision,
    read_artifact,
    recover_file as module_recover_file,
    write_text_artifact,
)
from assetseal_crypto.file_crypto import certificate_path_for, find_artifact
from assetseal_crypto.provision import CONTAINER_NAME, PASSPHRASE_NAME, read_passphrase

log = logging.getLogger('assetseal')

# Default certificate directory
CERTDIR_default_path = '~/.assetseal'
CERTDIR_ENV = 'ASSETSEAL_CERTDIR'
DEFAULT_SUBJECT = 'assetseal'


def default_certdir():
    return os.path.expanduser(os.environ.get(CERTDIR_ENV, CERTDIR_default_path))


def _show_info(cert_dir):
    container_path = find_artifact(os.path.join(cert_dir, CONTAINER_NAME))
    container = read_artifact(container_path)
    passphrase = read_passphrase(os.path.join(cert_dir, PASSPHRASE_NAME))
    with imported_private_key(container, passphrase, artifact=container_path) as handle:
        identity = handle.identity
        print(f"Subject:    {identity.subject}")
        print(f"Thumbprint: {identity.thumbprint}")
        print(f"Key size:   {identity.key_size} bits")


def _convert(input_path, output_path, to_base64):
    if os.path.exists(output_path):
        raise FileExistsError(f"Output file '{output_path}' already exists")
    if to_base64:
        with open(input_path, 'rb') as f_in:
            write_text_artifact(f_in.read(), output_path, logger=log)
    else:
        with open(input_path, 'r', encoding='ascii') as f_in:
            data = from_text(f_in.read())
        with open(output_path, 'wb') as f_out:
            f_out.write(data)
    return output_path


def build_parser():
    parser = argparse.ArgumentParser(description="Hybrid RSA-AES protection of files for public transit")

    action_group = parser.add_mutually_exclusive_group()
    action_group.add_argument('-e', '--encrypt', action='store_true', help='Encrypt file (provisions a new certificate unless -i is given)')
    action_group.add_argument('-d', '--decrypt', action='store_true', help='Decrypt file with the certificate directory')
    action_group.add_argument('--provision', action='store_true', help='Only provision a certificate into the certificate directory')
    action_group.add_argument('--info', action='store_true', help='Show subject, thumbprint and key size of the provisioned certificate')
    action_group.add_argument('--to-base64', action='store_true', help='Convert a binary artifact to its Base64 text form')
    action_group.add_argument('--from-base64', action='store_true', help='Convert a Base64 text artifact back to binary')

    parser.add_argument('file', nargs='?', help='File to encrypt, decrypt or convert')

    parser.add_argument('-c', '--certdir', default=None, help=f'Certificate directory, Default:${CERTDIR_ENV} or {CERTDIR_default_path}')
    parser.add_argument('-i', '--keyfile', help='Encrypt for an existing PEM certificate or public key instead of provisioning')
    parser.add_argument('--wrap', help='Wrap package for decryption, Default:<file>.key or <file>.key.base64')
    parser.add_argument('--container', help='Private-key container for decryption (binary or .base64), Default:<certdir>/certificate.pfx')
    parser.add_argument('--passphrase-file', help='Passphrase file for decryption, Default:<certdir>/certificate.passphrase')
    parser.add_argument('-o', '--output', help='Output file for encrypted/decrypted/converted content')

    parser.add_argument('--subject', default=DEFAULT_SUBJECT, help=f'Certificate subject label, Default:{DEFAULT_SUBJECT}')
    parser.add_argument('--key-size', type=int, default=DEFAULT_KEY_SIZE, help=f'RSA key size in bits, Default:{DEFAULT_KEY_SIZE}')
    parser.add_argument('--authenticated', action='store_true', help='Use AES-256-GCM for the payload (must match on decrypt)')
    parser.add_argument('--no-base64', action='store_true', help='Do not write Base64 text variants of the artifacts')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s - %(levelname)s - %(message)s')

    cert_dir = os.path.expanduser(args.certdir) if args.certdir else default_certdir()
    cipher = PayloadCipher.AES_256_GCM if args.authenticated else PayloadCipher.AES_256_CBC
    write_base64 = not args.no_base64

    # Parameter validation
    if (args.encrypt or args.decrypt or args.to_base64 or args.from_base64) and not args.file:
        parser.error("-e, -d, --to-base64 and --from-base64 require a file.")
    if args.keyfile and not args.encrypt:
        parser.error("-i is only valid with -e.")
    if (args.container or args.passphrase_file or args.wrap) and not args.decrypt:
        parser.error("--container, --passphrase-file and --wrap are only valid with -d.")

    try:
        if args.provision:
            provisioned = provision(args.subject, args.key_size, cert_dir=cert_dir,
                                    write_base64=write_base64, logger=log)
            print(f"Certificate '{provisioned.identity.subject}' ({provisioned.identity.thumbprint}) saved to '{cert_dir}'")
        elif args.info:
            _show_info(cert_dir)
        elif args.encrypt:
            if args.keyfile:
                out = module_encrypt_file(args.file, args.output, certificate_path=args.keyfile,
                                          cipher=cipher, write_base64=write_base64, logger=log)
            else:
                out = module_protect_file(args.file, cert_dir, args.subject, args.output, key_size=args.key_size,
                                          cipher=cipher, write_base64=write_base64, logger=log)
                print(f"Certificate saved to '{certificate_path_for(cert_dir)}'")
            print(f"File '{args.file}' successfully encrypted to '{out.payload_path}' (wrap package '{out.wrap_path}')")
        elif args.decrypt and (args.container or args.passphrase_file):
            out = module_decrypt_file(
                args.file,
                args.output,
                container_path=args.container or find_artifact(os.path.join(cert_dir, CONTAINER_NAME)),
                passphrase_path=args.passphrase_file or os.path.join(cert_dir, PASSPHRASE_NAME),
                wrap_path=args.wrap,
                cipher=cipher,
                logger=log,
            )
            print(f"File '{args.file}' successfully decrypted to '{out}'")
        elif args.decrypt:
            out = module_recover_file(args.file, cert_dir, args.output, wrap_path=args.wrap,
                                      cipher=cipher, logger=log)
            print(f"File '{args.file}' successfully decrypted to '{out}'")
        elif args.to_base64:
            out = _convert(args.file, args.output or f"{args.file}.base64", to_base64=True)
            print(f"File '{args.file}' converted to '{out}'")
        elif args.from_base64:
            default_out = args.file[:-len('.base64')] if args.file.endswith('.base64') else f"{args.file}.bin"
            out = _convert(args.file, args.output or default_out, to_base64=False)
            print(f"File '{args.file}' converted to '{out}'")
        else:
            parser.print_help()
    except (AssetSealError, OSError, ValueError) as e:
        log.error("%s", e)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
