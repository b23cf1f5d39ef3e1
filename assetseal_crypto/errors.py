from typing import Optional


class AssetSealError(Exception):
    """Base class for all failures raised by assetseal_crypto.

    `artifact` names the file or buffer involved and `step` the stage that
    failed, so a caller can diagnose without re-running.
    """

    def __init__(self, message: str, *, artifact: Optional[str] = None, step: Optional[str] = None):
        self.message = message
        self.artifact = artifact
        self.step = step
        super().__init__(message)

    def __str__(self) -> str:
        parts = []
        if self.step:
            parts.append(f"step={self.step}")
        if self.artifact:
            parts.append(f"artifact={self.artifact}")
        if not parts:
            return self.message
        return f"{self.message} ({', '.join(parts)})"


class ProvisioningFailed(AssetSealError):
    pass


class EncryptionFailed(AssetSealError):
    pass


class PrivateKeyUnavailable(AssetSealError):
    pass


class MalformedWrapPackage(AssetSealError, ValueError):
    pass


class DecryptionFailed(AssetSealError):
    pass
