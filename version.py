VERSION = "0.3.1"

UPDATE_INFO = """
**更新日志**
- v0.3.1: 登录回跳修复
  - 登录成功后不再跳回登录页本身（避免重定向循环）
  - 空会话值按缺失处理，回落到站点根地址
- v0.3.0: Starlette 集成
  - 新增 LoginRedirectMiddleware / AuthGateMiddleware
  - create_app() 工厂与演示路由
- v0.2.0: 配置与日志
  - pydantic-settings 配置，structlog 结构化日志
- v0.1.0: RedirectCoordinator 核心逻辑
"""
