"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层或调用方做统一捕获与用户提示。

只有 ValidationError（InvalidRequest）会真正抛给调用方；
远程层错误由编排器吞掉并触发降级，提取错误与语料损坏只记日志/计数。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 trace_id、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """Provider 限流错误。"""


class AuthError(BusinessError):
    """凭证缺失或被拒绝（401/403）。"""


class MalformedResponseError(BusinessError):
    """Provider 返回了无法解析或结构不符的响应。"""


class RemoteUnavailable(BusinessError):
    """远程层不可用的统一包装，extra["reason"] 为 FallbackReason。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


# 请求校验失败是唯一对调用方可见的错误
InvalidRequest = ValidationError


class ExtractionError(BusinessError):
    """文档提取失败（OCR 引擎错误、PDF 无法读取等），非致命。"""


class UnsupportedFormat(ExtractionError):
    """不支持的 MIME 类型，调用方按空文本继续。"""


class StoreError(BusinessError):
    """会话存储或语料文件读写失败。"""


class CorpusCorruption(BusinessError):
    """语料中的单条记录无法恢复；修复流程只计数，不中断。"""
