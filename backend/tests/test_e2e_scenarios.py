"""
E2E端到端场景测试

测试范围：
- 报价全流程：发起、定价、批准、指派、投产、备货、取件、送达、交易评分
- 修订场景：客户拒绝后员工修订，新版本重新批准
- 评分驱动的指派：按推荐结果为整个品类指派供应商
"""
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.services.state_machine import JobStatus, QuoteStatus


async def _price_all(client: AsyncClient, quote: dict, staff_headers: dict, price: str, auto_production: bool):
    payload = {
        "items": [{"item_id": item["id"], "price": price} for item in quote["items"]],
        "final_value": str(float(price) * sum(item["quantity"] for item in quote["items"])),
        "auto_production": auto_production
    }
    response = await client.post(f"/api/v1/quotes/{quote['id']}/price", json=payload, headers=staff_headers)
    assert response.status_code == 200, response.text
    return response.json()


# ==================== 场景1：报价到送达的完整流程 ====================

class TestFullBrokerageScenario:
    """完整经纪流程测试"""

    @pytest.mark.asyncio
    async def test_scenario_quote_to_delivery(
        self, client: AsyncClient, db_session: AsyncSession,
        customer, staff, courier, supplier, other_supplier, factory, headers
    ):
        """
        场景: 三个明细的报价从草稿走到全部送达
        步骤:
        1. 客户发起包含A、B、C三个明细的报价
        2. 员工为A、B指派供应商S1，定价并发送（自动投产）
        3. 客户批准，C尚未指派供应商，报价进入 approved 且没有任务
        4. 员工为C指派S2，报价进入 in_production，共3个任务
        5. S1、S2 接单并备货，全部备货后报价进入 ready
        6. 快递员取件并送达全部任务
        7. 员工给交易打9分
        """
        sku_a = await factory.create_sku(db_session, category="名片", product_name="名片A")
        sku_b = await factory.create_sku(db_session, category="名片", product_name="名片B")
        sku_c = await factory.create_sku(db_session, category="海报", product_name="海报C", size_label="A2")

        # Step 1: 客户发起报价
        create_response = await client.post("/api/v1/quotes/", json={
            "items": [
                {"sku_id": str(sku_a.id), "quantity": 500},
                {"sku_id": str(sku_b.id), "quantity": 1000},
                {"sku_id": str(sku_c.id), "quantity": 20},
            ]
        }, headers=headers(customer))
        assert create_response.status_code == 201, create_response.text
        draft = create_response.json()
        assert draft["status"] == QuoteStatus.DRAFT
        assert len(draft["items"]) == 3
        quote_id = draft["id"]
        item_a, item_b, item_c = (item["id"] for item in draft["items"])

        # Step 2: 员工指派A、B并定价发送
        for item_id, cost in ((item_a, "0.20"), (item_b, "0.15")):
            response = await client.post(
                f"/api/v1/quotes/{quote_id}/items/{item_id}/supplier",
                json={"supplier_id": str(supplier.id), "supplier_cost": cost, "delivery_days": 3},
                headers=headers(staff)
            )
            assert response.status_code == 200, response.text
            assert response.json()["created_jobs"] == []

        staff_view = (await client.get(f"/api/v1/quotes/{quote_id}", headers=headers(staff))).json()
        sent = await _price_all(client, staff_view, headers(staff), "0.50", auto_production=True)
        assert sent["status"] == QuoteStatus.SENT

        # Step 3: 客户批准
        approve_response = await client.post(f"/api/v1/quotes/{quote_id}/approve", headers=headers(customer))
        assert approve_response.status_code == 200
        assert approve_response.json()["status"] == QuoteStatus.APPROVED

        jobs = (await client.get("/api/v1/jobs/", headers=headers(staff))).json()
        assert jobs == []

        # Step 4: 为C指派S2后投产
        assign_response = await client.post(
            f"/api/v1/quotes/{quote_id}/items/{item_c}/supplier",
            json={"supplier_id": str(other_supplier.id), "supplier_cost": "12.00", "delivery_days": 5},
            headers=headers(staff)
        )
        assert assign_response.status_code == 200, assign_response.text
        assignment = assign_response.json()
        assert assignment["quote_status"] == QuoteStatus.IN_PRODUCTION
        assert len(assignment["created_jobs"]) == 3

        jobs = {job["quote_item_id"]: job for job in assignment["created_jobs"]}
        assert jobs[item_a]["supplier_id"] == str(supplier.id)
        assert jobs[item_b]["supplier_id"] == str(supplier.id)
        assert jobs[item_c]["supplier_id"] == str(other_supplier.id)
        assert all(job["status"] == JobStatus.PENDING for job in jobs.values())

        # Step 5: 接单、备货
        for item_id, owner in ((item_a, supplier), (item_b, supplier), (item_c, other_supplier)):
            job_id = jobs[item_id]["id"]
            accept = await client.post(f"/api/v1/jobs/{job_id}/accept", headers=headers(owner))
            assert accept.status_code == 200, accept.text

            quote_status = (await client.get(f"/api/v1/quotes/{quote_id}", headers=headers(staff))).json()["status"]
            assert quote_status == QuoteStatus.IN_PRODUCTION

            ready = await client.post(f"/api/v1/jobs/{job_id}/ready", headers=headers(owner))
            assert ready.status_code == 200, ready.text
            assert ready.json()["status"] == JobStatus.READY

        ready_quote = (await client.get(f"/api/v1/quotes/{quote_id}", headers=headers(customer))).json()
        assert ready_quote["status"] == QuoteStatus.READY

        # Step 6: 快递员取件、送达
        queue = (await client.get("/api/v1/jobs/", headers=headers(courier))).json()
        assert len(queue) == 3
        for job in queue:
            pickup = await client.post(f"/api/v1/jobs/{job['id']}/pickup", headers=headers(courier))
            assert pickup.status_code == 200
            deliver = await client.post(f"/api/v1/jobs/{job['id']}/deliver", headers=headers(courier))
            assert deliver.status_code == 200
            assert deliver.json()["status"] == JobStatus.DELIVERED

        delivered = (await client.get(
            "/api/v1/jobs/", params={"status": JobStatus.DELIVERED}, headers=headers(staff)
        )).json()
        assert len(delivered) == 3

        # Step 7: 交易评分
        rating = await client.post(f"/api/v1/quotes/{quote_id}/rating", json={"rating": 9}, headers=headers(staff))
        assert rating.status_code == 200
        assert rating.json()["deal_rating"] == 9
        assert rating.json()["status"] == QuoteStatus.READY


# ==================== 场景2：拒绝后修订 ====================

class TestRevisionScenario:
    """修订场景测试"""

    @pytest.mark.asyncio
    async def test_scenario_reject_revise_approve(
        self, client: AsyncClient, customer, staff, sku, headers
    ):
        """
        场景: 客户拒绝报价后员工修订
        步骤:
        1. 客户发起报价，员工定价发送
        2. 员工修订（原版本被替代），重新定价发送新版本
        3. 客户批准新版本，旧版本不能再批准
        4. 历史记录包含两个版本
        """
        draft = (await client.post("/api/v1/quotes/", json={
            "items": [{"sku_id": str(sku.id), "quantity": 200}]
        }, headers=headers(customer))).json()
        v1 = await _price_all(client, draft, headers(staff), "2.00", auto_production=False)

        revise = await client.post(f"/api/v1/quotes/{v1['id']}/revise", headers=headers(staff))
        assert revise.status_code == 201
        v2_draft = revise.json()
        assert v2_draft["version"] == 2
        assert v2_draft["parent_quote_id"] == v1["id"]
        assert v2_draft["quote_number"] == v1["quote_number"]

        v2 = await _price_all(client, v2_draft, headers(staff), "1.80", auto_production=False)

        approve = await client.post(f"/api/v1/quotes/{v2['id']}/approve", headers=headers(customer))
        assert approve.status_code == 200
        assert approve.json()["status"] == QuoteStatus.APPROVED

        stale = await client.post(f"/api/v1/quotes/{v1['id']}/approve", headers=headers(customer))
        assert stale.status_code == 409
        assert stale.json()["error"]["code"] == "INVALID_STATE_TRANSITION"

        history = (await client.get(f"/api/v1/quotes/{v2['id']}/history", headers=headers(customer))).json()
        assert [(h["version"], h["status"]) for h in history] == [
            (1, QuoteStatus.SUPERSEDED), (2, QuoteStatus.APPROVED)
        ]

        current = (await client.get("/api/v1/quotes/", headers=headers(customer))).json()
        assert [q["id"] for q in current] == [v2["id"]]


# ==================== 场景3：按推荐为品类指派 ====================

class TestRecommendationScenario:
    """推荐驱动的品类指派测试"""

    @pytest.mark.asyncio
    async def test_scenario_recommend_and_assign_category(
        self, client: AsyncClient, db_session: AsyncSession,
        customer, staff, supplier, other_supplier, factory, headers
    ):
        """
        场景: 员工查看品类推荐并按第一名批量指派
        步骤:
        1. 两家供应商维护长期报价，S1 更便宜
        2. 客户发起报价，员工定价发送，客户批准
        3. 员工查询品类推荐，S1 排名第一
        4. 按推荐为整个品类指派 S1，报价投产
        """
        sku_a = await factory.create_sku(db_session, category="宣传册")
        sku_b = await factory.create_sku(db_session, category="宣传册")

        for owner, price in ((supplier, "1.00"), (other_supplier, "1.30")):
            for sku in (sku_a, sku_b):
                response = await client.put("/api/v1/suppliers/prices", json={
                    "sku_id": str(sku.id), "price_per_unit": price, "delivery_days": 4
                }, headers=headers(owner))
                assert response.status_code == 200, response.text

        draft = (await client.post("/api/v1/quotes/", json={
            "items": [{"sku_id": str(sku_a.id), "quantity": 300}, {"sku_id": str(sku_b.id), "quantity": 100}]
        }, headers=headers(customer))).json()
        sent = await _price_all(client, draft, headers(staff), "2.50", auto_production=False)
        await client.post(f"/api/v1/quotes/{sent['id']}/approve", headers=headers(customer))

        staff_view = (await client.get(f"/api/v1/quotes/{sent['id']}", headers=headers(staff))).json()
        recommend = await client.post("/api/v1/suppliers/recommendations/category", json={
            "items": [
                {"quote_item_id": item["id"], "sku_id": item["sku_id"], "quantity": item["quantity"]}
                for item in staff_view["items"]
            ]
        }, headers=headers(staff))
        assert recommend.status_code == 200
        categories = recommend.json()
        assert len(categories) == 1
        best = categories[0]["suppliers"][0]
        assert best["supplier_id"] == str(supplier.id)
        assert best["rank"] == 1

        assign = await client.post(f"/api/v1/quotes/{sent['id']}/category-assignment", json={
            "supplier_id": best["supplier_id"],
            "items": [
                {"quote_item_id": item["quote_item_id"], "price": "1.00", "delivery_days": 4}
                for item in categories[0]["items"]
            ]
        }, headers=headers(staff))
        assert assign.status_code == 200, assign.text
        assert assign.json()["quote_status"] == QuoteStatus.IN_PRODUCTION
        assert len(assign.json()["created_jobs"]) == 2

        supplier_jobs = (await client.get("/api/v1/jobs/", headers=headers(supplier))).json()
        assert len(supplier_jobs) == 2
        assert all("final_value" not in job for job in supplier_jobs)
        other_jobs = (await client.get("/api/v1/jobs/", headers=headers(other_supplier))).json()
        assert other_jobs == []
