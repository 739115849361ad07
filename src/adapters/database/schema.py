"""Local Database Schema.

DDL for the tables the services read and write, used by the DuckDB adapter
(``careops init-db``) for demos, CLI dry runs and integration tests. The
hosted database owns the production schema; these definitions mirror the
columns the services use.

Architecture:
    - Identifiers are text UUIDs generated by the database when omitted
    - Timestamps are ISO-8601 text so range filters compare the same way
      the hosted API does
    - JSON columns hold dicts and lists; ``JSON_COLUMNS`` tells the adapter
      which columns to decode on read
"""

import re

_ID = "id VARCHAR PRIMARY KEY DEFAULT CAST(uuid() AS VARCHAR)"
_NOW = "VARCHAR DEFAULT strftime(CAST(now() AS TIMESTAMP), '%Y-%m-%dT%H:%M:%S')"

SCHEMA_STATEMENTS = [
    # ------------------------------------------------------------------
    # Beds
    # ------------------------------------------------------------------
    f"""CREATE TABLE IF NOT EXISTS hospital_units (
        {_ID},
        tenant_id VARCHAR,
        facility_id VARCHAR,
        unit_code VARCHAR,
        unit_name VARCHAR NOT NULL,
        unit_type VARCHAR DEFAULT 'med_surg',
        floor_number VARCHAR,
        total_beds INTEGER DEFAULT 0,
        target_census INTEGER,
        max_census INTEGER,
        is_active BOOLEAN DEFAULT TRUE,
        created_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS beds (
        {_ID},
        tenant_id VARCHAR,
        unit_id VARCHAR NOT NULL,
        room_number VARCHAR,
        bed_position VARCHAR DEFAULT 'A',
        bed_label VARCHAR,
        bed_type VARCHAR DEFAULT 'standard',
        status VARCHAR DEFAULT 'available',
        is_active BOOLEAN DEFAULT TRUE,
        has_telemetry BOOLEAN DEFAULT FALSE,
        has_isolation_capability BOOLEAN DEFAULT FALSE,
        has_negative_pressure BOOLEAN DEFAULT FALSE,
        patient_id VARCHAR,
        patient_name VARCHAR,
        patient_acuity VARCHAR,
        assigned_at VARCHAR,
        expected_discharge_date VARCHAR,
        status_changed_at VARCHAR,
        created_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS bed_status_history (
        {_ID},
        tenant_id VARCHAR,
        bed_id VARCHAR NOT NULL,
        unit_id VARCHAR,
        previous_status VARCHAR,
        new_status VARCHAR NOT NULL,
        changed_by VARCHAR,
        change_reason VARCHAR,
        duration_minutes INTEGER,
        changed_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS daily_census_snapshots (
        {_ID},
        tenant_id VARCHAR,
        unit_id VARCHAR,
        census_date VARCHAR NOT NULL,
        midnight_census INTEGER DEFAULT 0,
        midnight_available INTEGER DEFAULT 0,
        admissions_count INTEGER DEFAULT 0,
        discharges_count INTEGER DEFAULT 0,
        transfers_in INTEGER DEFAULT 0,
        transfers_out INTEGER DEFAULT 0,
        peak_census INTEGER,
        eod_census INTEGER,
        eod_available INTEGER,
        predicted_census INTEGER,
        prediction_accuracy DOUBLE,
        created_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS bed_availability_forecasts (
        {_ID},
        tenant_id VARCHAR,
        unit_id VARCHAR NOT NULL,
        forecast_date VARCHAR NOT NULL,
        predicted_census INTEGER,
        predicted_available INTEGER,
        predicted_discharges INTEGER,
        predicted_admissions INTEGER,
        confidence_level DOUBLE,
        actual_census INTEGER,
        actual_available INTEGER,
        forecast_error INTEGER,
        error_percentage DOUBLE,
        factors JSON,
        created_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS scheduled_arrivals (
        {_ID},
        tenant_id VARCHAR,
        patient_id VARCHAR,
        unit_id VARCHAR,
        arrival_type VARCHAR DEFAULT 'elective',
        scheduled_date VARCHAR NOT NULL,
        status VARCHAR DEFAULT 'scheduled',
        created_at {_NOW}
    )""",

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------
    f"""CREATE TABLE IF NOT EXISTS transfer_requests (
        {_ID},
        request_number VARCHAR DEFAULT ('TR-' || upper(substr(CAST(uuid() AS VARCHAR), 1, 8))),
        tenant_id VARCHAR,
        patient_id VARCHAR NOT NULL,
        patient_mrn VARCHAR,
        patient_age INTEGER,
        patient_gender VARCHAR,
        sending_facility_id VARCHAR NOT NULL,
        sending_unit VARCHAR,
        sending_contact_name VARCHAR,
        sending_contact_phone VARCHAR,
        receiving_facility_id VARCHAR,
        receiving_unit VARCHAR,
        receiving_contact_name VARCHAR,
        receiving_contact_phone VARCHAR,
        receiving_physician VARCHAR,
        transfer_type VARCHAR DEFAULT 'specialty',
        urgency VARCHAR DEFAULT 'routine',
        status VARCHAR DEFAULT 'pending',
        reason_for_transfer VARCHAR,
        clinical_summary VARCHAR,
        diagnosis_codes JSON,
        primary_diagnosis VARCHAR,
        required_service VARCHAR,
        required_specialty VARCHAR,
        acuity_level VARCHAR,
        requires_icu BOOLEAN DEFAULT FALSE,
        requires_isolation BOOLEAN DEFAULT FALSE,
        requires_ventilator BOOLEAN DEFAULT FALSE,
        requires_cardiac_monitoring BOOLEAN DEFAULT FALSE,
        special_equipment JSON,
        special_requirements VARCHAR,
        assigned_bed_id VARCHAR,
        assigned_bed_label VARCHAR,
        transport_mode VARCHAR,
        transport_company VARCHAR,
        scheduled_departure VARCHAR,
        actual_departure VARCHAR,
        actual_arrival VARCHAR,
        denial_reason VARCHAR,
        cancellation_reason VARCHAR,
        cancelled_at VARCHAR,
        notes VARCHAR,
        requested_at {_NOW},
        accepted_at VARCHAR,
        completed_at VARCHAR,
        created_at {_NOW},
        updated_at VARCHAR
    )""",
    f"""CREATE TABLE IF NOT EXISTS facility_capacity (
        {_ID},
        facility_id VARCHAR NOT NULL,
        facility_name VARCHAR,
        total_beds INTEGER DEFAULT 0,
        occupied_beds INTEGER DEFAULT 0,
        available_beds INTEGER DEFAULT 0,
        reserved_beds INTEGER DEFAULT 0,
        blocked_beds INTEGER DEFAULT 0,
        occupancy_percent DOUBLE DEFAULT 0,
        is_accepting_transfers BOOLEAN DEFAULT TRUE,
        divert_status BOOLEAN DEFAULT FALSE,
        icu_available INTEGER DEFAULT 0,
        step_down_available INTEGER DEFAULT 0,
        telemetry_available INTEGER DEFAULT 0,
        med_surg_available INTEGER DEFAULT 0,
        ed_available INTEGER DEFAULT 0,
        next_discharge_expected VARCHAR,
        snapshot_at {_NOW}
    )""",

    # ------------------------------------------------------------------
    # Patients and clinical records
    # ------------------------------------------------------------------
    f"""CREATE TABLE IF NOT EXISTS profiles (
        {_ID},
        user_id VARCHAR,
        tenant_id VARCHAR,
        role VARCHAR,
        first_name VARCHAR,
        last_name VARCHAR,
        full_name VARCHAR,
        dob VARCHAR,
        gender VARCHAR,
        preferred_language VARCHAR,
        phone VARCHAR,
        email VARCHAR,
        address VARCHAR,
        emergency_contacts JSON,
        created_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS emergency_response_info (
        {_ID},
        tenant_id VARCHAR,
        patient_id VARCHAR NOT NULL UNIQUE,
        bed_bound BOOLEAN DEFAULT FALSE,
        wheelchair_bound BOOLEAN DEFAULT FALSE,
        walker_required BOOLEAN DEFAULT FALSE,
        cane_required BOOLEAN DEFAULT FALSE,
        mobility_notes VARCHAR,
        oxygen_dependent BOOLEAN DEFAULT FALSE,
        oxygen_tank_location VARCHAR,
        dialysis_required BOOLEAN DEFAULT FALSE,
        dialysis_schedule VARCHAR,
        medical_equipment JSON,
        hearing_impaired BOOLEAN DEFAULT FALSE,
        hearing_impaired_notes VARCHAR,
        vision_impaired BOOLEAN DEFAULT FALSE,
        vision_impaired_notes VARCHAR,
        cognitive_impairment BOOLEAN DEFAULT FALSE,
        cognitive_impairment_type VARCHAR,
        cognitive_impairment_notes VARCHAR,
        non_verbal BOOLEAN DEFAULT FALSE,
        language_barrier VARCHAR,
        floor_number VARCHAR,
        building_quadrant VARCHAR,
        elevator_required BOOLEAN DEFAULT FALSE,
        elevator_access_code VARCHAR,
        building_type VARCHAR,
        stairs_to_unit INTEGER,
        door_code VARCHAR,
        key_location VARCHAR,
        access_instructions VARCHAR,
        door_opens_inward BOOLEAN DEFAULT FALSE,
        security_system BOOLEAN DEFAULT FALSE,
        security_system_code VARCHAR,
        pets_in_home VARCHAR,
        parking_instructions VARCHAR,
        gated_community_code VARCHAR,
        lobby_access_instructions VARCHAR,
        best_entrance VARCHAR,
        intercom_instructions VARCHAR,
        fall_risk_high BOOLEAN DEFAULT FALSE,
        fall_history VARCHAR,
        home_hazards VARCHAR,
        neighbor_name VARCHAR,
        neighbor_address VARCHAR,
        neighbor_phone VARCHAR,
        building_manager_name VARCHAR,
        building_manager_phone VARCHAR,
        response_priority VARCHAR DEFAULT 'standard',
        escalation_delay_hours INTEGER DEFAULT 6,
        special_instructions VARCHAR,
        critical_medications JSON,
        medication_location VARCHAR,
        medical_conditions_summary VARCHAR,
        consent_obtained BOOLEAN DEFAULT FALSE,
        consent_date VARCHAR,
        consent_given_by VARCHAR,
        hipaa_authorization BOOLEAN DEFAULT FALSE,
        created_by VARCHAR,
        updated_by VARCHAR,
        last_verified_date VARCHAR,
        created_at {_NOW},
        updated_at VARCHAR
    )""",
    f"""CREATE TABLE IF NOT EXISTS daily_check_ins (
        {_ID},
        user_id VARCHAR NOT NULL,
        tenant_id VARCHAR,
        status VARCHAR,
        responses JSON,
        concern_flags JSON,
        created_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS fhir_conditions (
        {_ID},
        patient_id VARCHAR NOT NULL,
        code VARCHAR,
        code_display VARCHAR,
        clinical_status VARCHAR DEFAULT 'active',
        recorded_date VARCHAR
    )""",
    f"""CREATE TABLE IF NOT EXISTS patient_diagnoses (
        {_ID},
        patient_id VARCHAR NOT NULL,
        diagnosis_name VARCHAR,
        icd10_code VARCHAR,
        is_primary BOOLEAN DEFAULT FALSE,
        status VARCHAR DEFAULT 'active'
    )""",
    f"""CREATE TABLE IF NOT EXISTS fhir_medication_statements (
        {_ID},
        patient_id VARCHAR NOT NULL,
        medication_display VARCHAR,
        dosage VARCHAR,
        frequency VARCHAR,
        status VARCHAR DEFAULT 'active'
    )""",
    f"""CREATE TABLE IF NOT EXISTS fhir_observations (
        {_ID},
        patient_id VARCHAR NOT NULL,
        code VARCHAR,
        code_display VARCHAR,
        value_quantity_value DOUBLE,
        value_quantity_unit VARCHAR,
        effective_datetime VARCHAR
    )""",
    f"""CREATE TABLE IF NOT EXISTS fhir_allergy_intolerances (
        {_ID},
        patient_id VARCHAR NOT NULL,
        code_display VARCHAR,
        criticality VARCHAR
    )""",
    f"""CREATE TABLE IF NOT EXISTS adverse_events (
        {_ID},
        patient_id VARCHAR NOT NULL,
        event_type VARCHAR,
        event_date VARCHAR,
        severity VARCHAR,
        location VARCHAR
    )""",
    f"""CREATE TABLE IF NOT EXISTS sdoh_assessments (
        {_ID},
        patient_id VARCHAR NOT NULL,
        housing_instability INTEGER DEFAULT 0,
        food_insecurity INTEGER DEFAULT 0,
        transportation_barriers INTEGER DEFAULT 0,
        social_isolation INTEGER DEFAULT 0,
        financial_strain INTEGER DEFAULT 0,
        overall_complexity_score INTEGER,
        risk_level VARCHAR,
        assessed_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS patient_readmissions (
        {_ID},
        patient_id VARCHAR NOT NULL,
        admission_date VARCHAR NOT NULL,
        discharge_date VARCHAR,
        facility_type VARCHAR
    )""",
    f"""CREATE TABLE IF NOT EXISTS passive_sdoh_detections (
        {_ID},
        patient_id VARCHAR NOT NULL,
        sdoh_category VARCHAR,
        risk_level VARCHAR,
        status VARCHAR DEFAULT 'pending',
        detected_at {_NOW}
    )""",

    # ------------------------------------------------------------------
    # Notifications and reminders
    # ------------------------------------------------------------------
    f"""CREATE TABLE IF NOT EXISTS user_notifications (
        {_ID},
        user_id VARCHAR NOT NULL,
        tenant_id VARCHAR,
        title VARCHAR NOT NULL,
        body VARCHAR,
        category VARCHAR,
        priority VARCHAR DEFAULT 'normal',
        data JSON,
        action_url VARCHAR,
        expires_at VARCHAR,
        read_at VARCHAR,
        dismissed_at VARCHAR,
        created_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS system_notifications (
        {_ID},
        tenant_id VARCHAR,
        notification_type VARCHAR,
        priority VARCHAR,
        title VARCHAR,
        message VARCHAR,
        metadata JSON,
        created_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS appointment_reminder_log (
        {_ID},
        appointment_id VARCHAR NOT NULL,
        patient_id VARCHAR,
        reminder_type VARCHAR NOT NULL,
        sms_sent BOOLEAN DEFAULT FALSE,
        sms_sid VARCHAR,
        sms_status VARCHAR,
        push_sent BOOLEAN DEFAULT FALSE,
        push_status VARCHAR,
        email_sent BOOLEAN DEFAULT FALSE,
        email_status VARCHAR,
        status VARCHAR DEFAULT 'pending',
        skip_reason VARCHAR,
        scheduled_for VARCHAR,
        sent_at VARCHAR,
        created_at {_NOW}
    )""",

    # ------------------------------------------------------------------
    # Law enforcement
    # ------------------------------------------------------------------
    f"""CREATE TABLE IF NOT EXISTS welfare_check_priority_queue (
        {_ID},
        tenant_id VARCHAR NOT NULL,
        senior_id VARCHAR NOT NULL,
        calculation_date VARCHAR NOT NULL,
        priority_score INTEGER DEFAULT 0,
        priority_category VARCHAR DEFAULT 'routine',
        days_since_last_checkin INTEGER,
        mobility_risk_level VARCHAR,
        recommended_action VARCHAR,
        risk_factors JSON,
        officer_notes VARCHAR,
        last_check_completed_at VARCHAR,
        last_check_outcome VARCHAR,
        last_check_officer_id VARCHAR,
        last_check_notes VARCHAR,
        last_updated VARCHAR,
        UNIQUE (tenant_id, senior_id, calculation_date)
    )""",
    f"""CREATE TABLE IF NOT EXISTS welfare_check_access_log (
        {_ID},
        tenant_id VARCHAR,
        officer_id VARCHAR NOT NULL,
        officer_name VARCHAR,
        officer_badge_number VARCHAR,
        department_name VARCHAR,
        access_reason VARCHAR,
        seniors_viewed_count INTEGER DEFAULT 0,
        priority_filter VARCHAR,
        accessed_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS welfare_check_analytics (
        {_ID},
        tenant_id VARCHAR NOT NULL,
        analytics_date VARCHAR NOT NULL,
        total_seniors INTEGER DEFAULT 0,
        critical_count INTEGER DEFAULT 0,
        high_count INTEGER DEFAULT 0,
        elevated_count INTEGER DEFAULT 0,
        routine_count INTEGER DEFAULT 0,
        checks_completed INTEGER DEFAULT 0,
        avg_response_minutes DOUBLE
    )""",

    # ------------------------------------------------------------------
    # AI skills
    # ------------------------------------------------------------------
    f"""CREATE TABLE IF NOT EXISTS ai_skill_config (
        {_ID},
        tenant_id VARCHAR NOT NULL UNIQUE,
        billing_suggester_enabled BOOLEAN,
        billing_suggester_auto_apply BOOLEAN,
        billing_suggester_confidence_threshold DOUBLE,
        billing_suggester_model VARCHAR,
        welfare_check_dispatcher_enabled BOOLEAN,
        welfare_check_dispatcher_auto_dispatch_threshold INTEGER,
        fall_risk_predictor_enabled BOOLEAN,
        care_plan_generator_enabled BOOLEAN,
        hl7_interpreter_enabled BOOLEAN,
        bed_optimizer_enabled BOOLEAN,
        updated_at VARCHAR
    )""",
    f"""CREATE TABLE IF NOT EXISTS ai_skill_usage (
        {_ID},
        skill_name VARCHAR NOT NULL,
        tenant_id VARCHAR,
        patient_id VARCHAR,
        request_type VARCHAR,
        model VARCHAR,
        input_tokens INTEGER DEFAULT 0,
        output_tokens INTEGER DEFAULT 0,
        cost DOUBLE DEFAULT 0,
        latency_ms INTEGER,
        metadata JSON,
        created_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS ai_billing_suggestions (
        {_ID},
        tenant_id VARCHAR,
        encounter_id VARCHAR NOT NULL,
        patient_id VARCHAR,
        provider_id VARCHAR,
        suggested_codes JSON,
        final_codes JSON,
        overall_confidence DOUBLE,
        requires_review BOOLEAN DEFAULT TRUE,
        review_reason VARCHAR,
        status VARCHAR DEFAULT 'pending',
        from_cache BOOLEAN DEFAULT FALSE,
        ai_model VARCHAR,
        ai_cost DOUBLE DEFAULT 0,
        ai_prediction_tracking_id VARCHAR,
        reviewed_by VARCHAR,
        reviewed_at VARCHAR,
        review_notes VARCHAR,
        created_at {_NOW},
        updated_at VARCHAR
    )""",
    f"""CREATE TABLE IF NOT EXISTS billing_code_cache (
        {_ID},
        cache_key VARCHAR NOT NULL UNIQUE,
        encounter_type VARCHAR,
        diagnosis_codes JSON,
        suggested_cpt_codes JSON,
        suggested_hcpcs_codes JSON,
        suggested_icd10_codes JSON,
        overall_confidence DOUBLE,
        model_used VARCHAR,
        hit_count INTEGER DEFAULT 0,
        created_at {_NOW},
        updated_at VARCHAR
    )""",
    f"""CREATE TABLE IF NOT EXISTS ai_fall_risk_assessments (
        {_ID},
        assessment_id VARCHAR NOT NULL UNIQUE,
        patient_id VARCHAR NOT NULL,
        assessor_id VARCHAR,
        assessment_date VARCHAR,
        assessment_context VARCHAR,
        overall_risk_score INTEGER DEFAULT 0,
        risk_category VARCHAR,
        morse_scale_estimate INTEGER DEFAULT 0,
        risk_factors JSON,
        protective_factors JSON,
        patient_age INTEGER,
        age_risk_category VARCHAR,
        category_scores JSON,
        interventions JSON,
        precautions JSON,
        monitoring_frequency VARCHAR,
        confidence DOUBLE,
        requires_review BOOLEAN DEFAULT TRUE,
        review_reasons JSON,
        plain_language_explanation VARCHAR,
        status VARCHAR DEFAULT 'pending_review',
        reviewed_by VARCHAR,
        reviewed_at VARCHAR,
        review_notes VARCHAR,
        created_at {_NOW},
        updated_at VARCHAR
    )""",
    f"""CREATE TABLE IF NOT EXISTS ai_care_plans (
        {_ID},
        patient_id VARCHAR NOT NULL,
        author_id VARCHAR,
        status VARCHAR DEFAULT 'draft',
        title VARCHAR,
        description VARCHAR,
        plan_type VARCHAR,
        priority VARCHAR,
        goals JSON,
        interventions JSON,
        barriers JSON,
        activities JSON,
        care_team JSON,
        estimated_duration VARCHAR,
        review_schedule VARCHAR,
        success_criteria JSON,
        risk_factors JSON,
        icd10_codes JSON,
        ccm_eligible BOOLEAN DEFAULT FALSE,
        tcm_eligible BOOLEAN DEFAULT FALSE,
        confidence DOUBLE,
        evidence_sources JSON,
        requires_review BOOLEAN DEFAULT TRUE,
        review_reasons JSON,
        approved_by VARCHAR,
        approved_at VARCHAR,
        created_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS ai_hl7_interpretations (
        {_ID},
        tenant_id VARCHAR,
        patient_id VARCHAR,
        source_system VARCHAR,
        message_type VARCHAR,
        control_id VARCHAR,
        segment_count INTEGER DEFAULT 0,
        fhir_mappings JSON,
        ambiguities JSON,
        clinical_summary VARCHAR,
        abnormal_results JSON,
        parse_errors JSON,
        confidence DOUBLE,
        requires_review BOOLEAN DEFAULT FALSE,
        ai_model VARCHAR,
        created_at {_NOW}
    )""",

    # ------------------------------------------------------------------
    # Accuracy tracking
    # ------------------------------------------------------------------
    f"""CREATE TABLE IF NOT EXISTS ai_predictions (
        {_ID},
        tenant_id VARCHAR,
        skill_name VARCHAR NOT NULL,
        prediction_type VARCHAR DEFAULT 'structured',
        prediction_value JSON,
        confidence_score DOUBLE,
        patient_id VARCHAR,
        entity_type VARCHAR,
        entity_id VARCHAR,
        model_used VARCHAR,
        input_tokens INTEGER,
        output_tokens INTEGER,
        cost_usd DOUBLE,
        latency_ms INTEGER,
        actual_outcome JSON,
        is_accurate BOOLEAN,
        outcome_source VARCHAR,
        outcome_notes VARCHAR,
        predicted_at {_NOW},
        outcome_recorded_at VARCHAR
    )""",
    f"""CREATE TABLE IF NOT EXISTS ai_prompt_versions (
        {_ID},
        skill_name VARCHAR NOT NULL,
        prompt_type VARCHAR DEFAULT 'system',
        version_number INTEGER DEFAULT 1,
        prompt_content VARCHAR,
        description VARCHAR,
        change_notes VARCHAR,
        is_active BOOLEAN DEFAULT FALSE,
        is_default BOOLEAN DEFAULT FALSE,
        total_uses INTEGER DEFAULT 0,
        accuracy_rate DOUBLE,
        activated_at VARCHAR,
        deactivated_at VARCHAR,
        created_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS ai_prompt_experiments (
        {_ID},
        experiment_name VARCHAR NOT NULL,
        skill_name VARCHAR NOT NULL,
        hypothesis VARCHAR,
        control_prompt_id VARCHAR,
        treatment_prompt_id VARCHAR,
        traffic_split DOUBLE DEFAULT 0.5,
        min_sample_size INTEGER DEFAULT 100,
        status VARCHAR DEFAULT 'draft',
        start_at VARCHAR,
        end_at VARCHAR,
        winner VARCHAR,
        created_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS billing_code_accuracy (
        {_ID},
        prediction_id VARCHAR,
        encounter_id VARCHAR,
        suggested_codes JSON,
        final_codes_used JSON,
        codes_accepted INTEGER DEFAULT 0,
        codes_rejected INTEGER DEFAULT 0,
        codes_added_by_provider INTEGER DEFAULT 0,
        suggested_revenue DOUBLE,
        actual_revenue DOUBLE,
        revenue_delta DOUBLE,
        reviewed_by VARCHAR,
        reviewed_at VARCHAR,
        created_at {_NOW}
    )""",
    f"""CREATE TABLE IF NOT EXISTS sdoh_detection_accuracy (
        {_ID},
        prediction_id VARCHAR,
        detection_id VARCHAR,
        was_confirmed BOOLEAN,
        was_dismissed BOOLEAN,
        was_false_positive BOOLEAN,
        reviewed_by VARCHAR,
        reviewed_at VARCHAR,
        created_at {_NOW}
    )""",

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------
    f"""CREATE TABLE IF NOT EXISTS audit_logs (
        {_ID},
        event_type VARCHAR NOT NULL,
        severity VARCHAR DEFAULT 'INFO',
        category VARCHAR,
        details JSON,
        created_at {_NOW}
    )""",
]

_TABLE_NAME = re.compile(r"CREATE TABLE IF NOT EXISTS (\w+)")
_JSON_COLUMN = re.compile(r"^\s*(\w+) JSON\b", re.MULTILINE)

JSON_COLUMNS: dict[str, tuple[str, ...]] = {
    _TABLE_NAME.search(statement).group(1): tuple(_JSON_COLUMN.findall(statement))
    for statement in SCHEMA_STATEMENTS
}

TABLE_NAMES = list(JSON_COLUMNS)
