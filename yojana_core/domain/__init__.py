"""领域层模型与协议。

包含：
- models: ChatTurn / Citation / ResponderReply 等统一模型。
- conversation: ConversationStore 抽象。
- schemes: 福利项目目录与推荐结果模型。
- exceptions: 业务异常类型定义。
"""
