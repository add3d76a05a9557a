"""检出服务

- urls.py: 仓库地址规范化
- refs.py: ref / commit 解析与 refspec 生成
- reconciler.py: 已有工作区复用或重建
- orchestrator.py: 检出主流程

core.config 依赖 urls，这里不做再导出，避免循环导入。
"""
