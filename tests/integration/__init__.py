"""
集成测试（integration tests）

说明：
- 该目录下的测试在本地临时 HTTP server 上模拟 Telegram Bot API，不访问真实网络。
- 测试语义为“真实跑通才算通过”：worker、transport、存储全部使用真实实现。
"""
