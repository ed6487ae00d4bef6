"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- RoomRegistry：房間生命週期、PIN 驗證、開關投票
- VoteLedger：投票寫入（唯一性 + 關閉房間檢查）
- UserManager：Trustee（房主）帳號
- RouletteEngine：淘汰制輪盤（純演算法，不碰資料庫）
- RouletteManager：把輪盤狀態存回投票紀錄
- Locks：並發控制工具
"""
