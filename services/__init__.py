"""
服務層

這個 package 包含純計算邏輯，不負責狀態轉換：
- NamingService：房間網址、即時頻道名稱
- PinService：PIN 產生與 digest 比對
- HostTokenService：Host 權限 token
- PaginationService：分頁
- TallyService：票數統計、猜對的人
"""
