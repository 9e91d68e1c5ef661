"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层统一捕获并转换为用户可读的错误响应。

错误种类：
- InvalidRequest: 调用方输入缺失，在任何 I/O 之前拒绝。
- ResponderUnavailable: 主/备 AI 调用失败（网络、非 2xx、响应体无法解析、未配置）。
- StoreUnavailable: 会话历史读写失败，由编排层在本地吞掉并记录日志。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、upstream_status 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class InvalidRequest(BusinessError):
    """参数缺失或校验失败。"""


class ResponderUnavailable(BusinessError):
    """AI 应答方不可用。

    上层编排器把本类（及其子类）统一视为“该应答方失败”，据此决定是否回退。
    """

    def __init__(self, code: str, message: str, http_status: int = 500, **extra):
        super().__init__(code, message, http_status, **extra)


class NetworkError(ResponderUnavailable):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(ResponderUnavailable):
    """第三方 API 返回非 2xx，或响应体中取不到文本。"""


class RateLimitError(ApiError):
    """Provider 限流错误（HTTP 429）。"""


class StoreUnavailable(BusinessError):
    """会话存储读写失败。"""

    def __init__(self, code: str, message: str, http_status: int = 500, **extra):
        super().__init__(code, message, http_status, **extra)
