"""领域层模型与协议。

包含：
- models: ChatMessage / StreamChunk / ConversationSession 模型。
- actions: Action 变体与 ActionPlan。
- conversation: 消息记录、MessageStore 与 IdentityProvider 协议。
- exceptions: 业务异常类型定义。
"""
