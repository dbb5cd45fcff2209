class RedirectError(Exception):
    """系统基础异常类"""
    def __init__(self, message: str, context: dict | None = None) -> None:
        super().__init__(message)
        self.context = context or {}

class ConfigurationError(RedirectError):
    """
    配置错误（不可恢复）
    场景：登录地址为空、状态码越界、两个状态码相同
    """
    pass

class SessionUnavailableError(RedirectError):
    """
    会话不可用
    场景：LoginRedirectMiddleware 安装在 SessionMiddleware 之外，request.session 无法访问
    """
    pass
