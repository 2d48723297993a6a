"""
服务端错误分类。

调用方只会看到 code + 简短描述，数据库/对象存储的原始报错只写入日志。
"""


class CipherVaultError(Exception):
    code = "internal_error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidInput(CipherVaultError):
    code = "invalid_input"
    status_code = 400


class RecordNotFound(CipherVaultError):
    code = "record_not_found"
    status_code = 404


class ItemAlreadyExists(CipherVaultError):
    code = "item_already_exists"
    status_code = 409


class UsernameAlreadyExists(CipherVaultError):
    code = "username_already_exists"
    status_code = 409


class UserNotFound(CipherVaultError):
    code = "user_not_found"
    status_code = 404


class InvalidPassword(CipherVaultError):
    code = "invalid_password"
    status_code = 401


class Unauthenticated(CipherVaultError):
    code = "unauthenticated"
    status_code = 401


class StoreError(CipherVaultError):
    code = "service_not_available"
    status_code = 500


class ObjectStoreError(StoreError):
    def __init__(self, operation: str, key: str = ""):
        super().__init__(f"{operation} {key}".strip())
        self.operation = operation
        self.key = key
